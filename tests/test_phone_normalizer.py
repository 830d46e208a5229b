from __future__ import annotations

import pytest

from services.phone.phone_normalizer import (
    format_for_speech,
    is_complete_phone,
    normalize_phone,
    phone_from_speech,
    spoken_digits,
)


@pytest.mark.parametrize("raw", ["555-123-4567", "5551234567", "+15551234567", "(555) 123 4567", "1 555 123 4567"])
def test_common_formats_share_one_canonical_value(raw):
    assert normalize_phone(raw) == "+15551234567"


def test_normalization_is_idempotent():
    once = normalize_phone("555.123.4567")
    assert normalize_phone(once) == once


def test_partial_capture_is_not_complete():
    partial = normalize_phone("555123")
    assert partial == "555123"
    assert not is_complete_phone(partial)


def test_empty_input_normalizes_to_empty():
    assert normalize_phone("") == ""
    assert not is_complete_phone("")


def test_spoken_digits_with_fillers_and_repeats():
    text = "um my number is five five five, one two three, double four five oh"
    assert spoken_digits(text) == "5551234450"


def test_spanish_digit_words():
    assert phone_from_speech("cinco cinco cinco uno dos tres cuatro cinco seis siete") == "+15551234567"


def test_long_speech_capture_keeps_national_digits():
    assert phone_from_speech("area code 1 5 5 5 1 2 3 4 5 6 7 thanks") == "+15551234567"


def test_format_for_speech_groups_digits():
    assert format_for_speech("+15551234567") == "5 5 5, 1 2 3, 4 5 6 7"


@pytest.mark.parametrize("raw", ["1555123456", "0555123456", "1 0 5 5 5 1 2 3 4 5"])
def test_impossible_area_code_is_partial(raw):
    assert not is_complete_phone(normalize_phone(raw, "1"))


def test_other_country_codes_keep_leading_digits():
    assert normalize_phone("1555123456", "44") == "+441555123456"
