"""
=====================================================
Voice Scheduling Platform - Phone Normalizer
=====================================================
Canonicalizes phone numbers from keypad digits, speech transcripts
and stored records into one comparable E.164 form.
"""

import re
import unicodedata
from typing import List

from config.settings import get_settings


DIGIT_WORDS = {
    # English
    "zero": "0", "oh": "0", "one": "1", "two": "2", "three": "3", "four": "4",
    "five": "5", "six": "6", "seven": "7", "eight": "8", "nine": "9",
    # Spanish
    "cero": "0", "uno": "1", "una": "1", "dos": "2", "tres": "3", "cuatro": "4",
    "cinco": "5", "seis": "6", "siete": "7", "ocho": "8", "nueve": "9",
}

REPEAT_WORDS = {"double": 2, "triple": 3, "doble": 2}

NANP_COUNTRY_CODE = "1"

_NON_DIGIT = re.compile(r"\D")
_TOKEN = re.compile(r"[a-z0-9]+")


def digits_only(value: str) -> str:
    """Strip everything except digits"""
    if not value:
        return ""
    return _NON_DIGIT.sub("", value)


def normalize_phone(value: str, country_code: str = None) -> str:
    """
    Normalize a phone number to E.164 (``+15551234567``).

    Ten national digits get the default country code. Captures with fewer
    than ten digits are partial and come back as bare digits so callers
    can tell them apart with is_complete_phone(). Idempotent.

    Args:
        value: Raw number in any common format
        country_code: Override for the default country code

    Returns:
        Canonical number, bare digits for partial captures, or "" if empty
    """
    cc = country_code or get_settings().default_country_code
    digits = digits_only(value)
    if not digits:
        return ""

    if value.strip().startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    if len(digits) == 10 + len(cc) and digits.startswith(cc):
        national = digits[len(cc):]
    elif len(digits) >= 10:
        # Extra leading noise from speech ("my number is 1 ...") - keep the national part
        national = digits[-10:]
    else:
        return digits

    if cc == NANP_COUNTRY_CODE and national[0] in "01":
        # No North American area code starts with 0 or 1: a truncated "1 555 ..." entry
        return digits
    return f"+{cc}{national}"


def is_complete_phone(value: str) -> bool:
    """True when the value is a canonical (complete) number"""
    return bool(value) and value.startswith("+")


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def spoken_digits(text: str) -> str:
    """
    Extract the digit sequence from a speech transcript.

    Handles digit words in English and Spanish, ``double``/``triple``
    repeats and numerals mixed into the transcript. Filler words are
    ignored.
    """
    digits: List[str] = []
    repeat = 1

    for token in _TOKEN.findall(_fold(text or "")):
        if token in REPEAT_WORDS:
            repeat = REPEAT_WORDS[token]
            continue

        if token.isdigit():
            chunk = token
        elif token in DIGIT_WORDS:
            chunk = DIGIT_WORDS[token]
        else:
            continue

        # "double five" repeats a single digit; "double 55" is already spelled out
        if repeat > 1 and len(chunk) == 1:
            chunk = chunk * repeat
        digits.append(chunk)
        repeat = 1

    return "".join(digits)


def phone_from_speech(text: str, country_code: str = None) -> str:
    """
    Normalize a spoken phone number.

    Returns:
        Canonical number, or the partial digits captured so far
    """
    return normalize_phone(spoken_digits(text), country_code)


def format_for_speech(phone: str) -> str:
    """Read a number back in 3-3-4 groups: ``5 5 5, 1 2 3, 4 5 6 7``"""
    national = digits_only(phone)[-10:]
    if len(national) < 10:
        return " ".join(national)
    groups = [national[:3], national[3:6], national[6:]]
    return ", ".join(" ".join(group) for group in groups)
