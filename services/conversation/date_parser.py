"""
=====================================================
Voice Scheduling Platform - Spoken Date Parser
=====================================================
Turns "tomorrow", "next Tuesday", "March 20th" or "20 de marzo" into a
calendar date. Unparseable input means tomorrow.
"""

import re
from datetime import date, timedelta
from typing import Optional, Dict

from services.conversation.intents import fold_accents, normalize_speech
from services.conversation.language import LanguagePack

_DAY_NUMBER = re.compile(r"^(\d{1,2})(?:st|nd|rd|th|ro|do|vo|to)?$")

# "por la mañana" is "in the morning", not "tomorrow"
_MORNING_PHRASES = ("por la manana", "en la manana", "de la manana")


def _month_lookup(pack: LanguagePack) -> Dict[str, int]:
    months = {fold_accents(name): i + 1 for i, name in enumerate(pack.months)}
    months.update(pack.month_aliases)
    return months


def _day_number(word: str) -> Optional[int]:
    match = _DAY_NUMBER.match(word)
    if not match:
        return None
    value = int(match.group(1))
    return value if 1 <= value <= 31 else None


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def _roll_forward(today: date, month: int, day: int) -> date:
    candidate = date(today.year, month, day)
    if candidate < today:
        candidate = date(today.year + 1, month, day)
    return candidate


def _explicit_date(words, pack: LanguagePack, today: date) -> Optional[date]:
    months = _month_lookup(pack)

    for index, word in enumerate(words):
        month = months.get(word)
        if month is None:
            continue

        # "march 20th" / "20 de marzo" / "20th of march"
        neighbours = [index + 1, index - 1, index - 2, index - 3]
        for position in neighbours:
            if 0 <= position < len(words):
                day = _day_number(words[position])
                if day is not None:
                    return _roll_forward(today, month, day)
    return None


def _bare_day_of_month(words, today: date) -> Optional[date]:
    # "the 20th" - this month, or next month once it has passed
    for index, word in enumerate(words):
        if word in ("the", "el") and index + 1 < len(words):
            day = _day_number(words[index + 1])
            if day is None:
                continue
            year, month = today.year, today.month
            if day < today.day:
                year, month = (year + 1, 1) if month == 12 else (year, month + 1)
            return date(year, month, day)
    return None


def _weekday(words, pack: LanguagePack, today: date) -> Optional[date]:
    weekdays = {fold_accents(name): i for i, name in enumerate(pack.weekdays)}
    for word in words:
        if word in weekdays:
            ahead = (weekdays[word] - today.weekday()) % 7
            return today + timedelta(days=ahead or 7)
    return None


def parse_spoken_date(text: str, pack: LanguagePack, today: date) -> date:
    """
    Parse a spoken date expression

    Args:
        text: Speech recognition result
        pack: Language pack for day/month names
        today: Today in the tenant's timezone

    Returns:
        The requested date; tomorrow when nothing usable was said
    """
    tomorrow = today + timedelta(days=1)
    normalized = normalize_speech(text, pack)
    for phrase in _MORNING_PHRASES:
        normalized = normalized.replace(phrase, " ")
    if not normalized.strip():
        return tomorrow

    if any(_has_phrase(normalized, p) for p in pack.day_after_words):
        return today + timedelta(days=2)
    if any(_has_phrase(normalized, p) for p in pack.tomorrow_words):
        return tomorrow
    if any(_has_phrase(normalized, p) for p in pack.today_words):
        return today

    words = normalized.split()
    try:
        explicit = _explicit_date(words, pack, today) or _bare_day_of_month(words, today)
    except ValueError:
        # "February 30th"
        return tomorrow
    if explicit is not None:
        return explicit

    return _weekday(words, pack, today) or tomorrow
