from __future__ import annotations

import pytest

from services.conversation.intents import (
    classify_intent,
    contains_keyword,
    extract_name,
    mentions_any,
    normalize_speech,
    parse_choice,
    slot_for_time,
    spoken_time,
)
from services.conversation.language import ENGLISH, SPANISH, Intent


@pytest.mark.parametrize(
    "text, expected",
    [
        ("I'd like to book an appointment", Intent.BOOKING),
        ("I want to leave a message", Intent.VOICEMAIL),
        ("How much is a cleaning?", Intent.PRICING),
        ("Can I talk to a human", Intent.TRANSFER),
        ("I need an apointment for Friday", Intent.BOOKING),
        ("a point meant please", Intent.BOOKING),
        ("hello there", None),
        ("", None),
    ],
)
def test_english_intents(text, expected):
    assert classify_intent(text, ENGLISH) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("quiero una sita", Intent.BOOKING),
        ("Quiero dejar un mensaje", Intent.VOICEMAIL),
        ("¿Cuánto cuesta?", Intent.PRICING),
        ("quiero hablar con una persona", Intent.TRANSFER),
    ],
)
def test_spanish_intents(text, expected):
    assert classify_intent(text, SPANISH) == expected


def test_first_intent_in_order_wins():
    assert classify_intent("book an appointment or talk to someone", ENGLISH) == Intent.BOOKING


def test_short_keywords_are_not_fuzzy_matched():
    assert not contains_keyword("a few dates", "fee")
    assert contains_keyword("the fees", "fees")


def test_normalization_folds_accents_and_punctuation():
    assert normalize_speech("¡Mañana, por favor!", SPANISH) == "manana por favor"


@pytest.mark.parametrize(
    "speech, digits, pack, expected",
    [
        ("", "2", ENGLISH, 2),
        ("", "#", ENGLISH, None),
        ("the second one", "", ENGLISH, 2),
        ("option 3", "", ENGLISH, 3),
        ("more please", "", ENGLISH, 4),
        ("a person", "", ENGLISH, 0),
        ("la primera", "", SPANISH, 1),
        ("nothing really", "", ENGLISH, None),
    ],
)
def test_parse_choice(speech, digits, pack, expected):
    assert parse_choice(speech, digits, pack) == expected


def test_same_number_phrases():
    assert mentions_any("use the number I'm calling from", ENGLISH.same_number_phrases, ENGLISH)
    assert mentions_any("el mismo número", SPANISH.same_number_phrases, SPANISH)
    assert not mentions_any("five five five", ENGLISH.same_number_phrases, ENGLISH)


@pytest.mark.parametrize(
    "speech, expected",
    [
        ("My name is dana scully.", "Dana Scully"),
        ("it's Fox", "Fox"),
        ("me llamo josé núñez", "José Núñez"),
        ("Walter Skinner", "Walter Skinner"),
        ("", ""),
    ],
)
def test_extract_name(speech, expected):
    assert extract_name(speech) == expected


@pytest.mark.parametrize(
    "speech, pack, expected",
    [
        ("the one thirty", ENGLISH, (1, 30)),
        ("9:30 please", ENGLISH, (9, 30)),
        ("the first one at ten o'clock", ENGLISH, (10, 0)),
        ("two pm works", ENGLISH, (2, 0)),
        ("a las diez y media", SPANISH, (10, 30)),
        ("la una en punto", SPANISH, (1, 0)),
        ("two", ENGLISH, None),
        ("option one", ENGLISH, None),
        ("la segunda", SPANISH, None),
    ],
)
def test_spoken_time(speech, pack, expected):
    assert spoken_time(speech, pack) == expected


def test_slot_for_time_matches_offered_slots_only():
    offered = ["09:00", "13:30", "14:00"]
    assert slot_for_time((1, 30), offered) == 2
    assert slot_for_time((9, 0), offered) == 1
    assert slot_for_time((10, 30), offered) is None
    assert slot_for_time((9, 0), ["09:00", "21:00"]) is None
