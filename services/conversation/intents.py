"""
=====================================================
Voice Scheduling Platform - Keyword Intent Classifier
=====================================================
Ordered keyword-set matching over normalized speech. The first intent
whose keywords match wins.
"""

import re
import unicodedata
from typing import Optional, List, Tuple

from services.conversation.language import Intent, LanguagePack

_WORD = re.compile(r"[a-z0-9']+")


def fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_speech(text: str, pack: LanguagePack) -> str:
    """
    Lower-case, strip accents and punctuation, and fix common
    recognition mistakes for the pack's language.
    """
    folded = fold_accents((text or "").lower())
    words = _WORD.findall(folded)
    normalized = " ".join(pack.substitutions.get(w, w) for w in words)
    for wrong, right in pack.substitutions.items():
        if " " in wrong:
            normalized = re.sub(rf"\b{re.escape(wrong)}\b", right, normalized)
    return normalized


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance"""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def _fuzzy_limit(word: str) -> int:
    if len(word) < 5:
        return 0
    return 1 if len(word) <= 7 else 2


def contains_keyword(normalized: str, keyword: str) -> bool:
    """Whole-word/phrase containment, with a bounded fuzzy match for long words"""
    if re.search(rf"\b{re.escape(keyword)}\b", normalized):
        return True
    if " " in keyword:
        return False

    limit = _fuzzy_limit(keyword)
    if limit == 0:
        return False
    return any(
        abs(len(word) - len(keyword)) <= limit and edit_distance(word, keyword) <= limit
        for word in normalized.split()
        if _fuzzy_limit(word)
    )


def classify_intent(text: str, pack: LanguagePack) -> Optional[Intent]:
    """
    Classify a caller utterance

    Args:
        text: Speech recognition result
        pack: Language pack with keyword sets

    Returns:
        First matching intent in pack order, or None
    """
    normalized = normalize_speech(text, pack)
    if not normalized:
        return None

    for intent, keywords in pack.intent_keywords.items():
        if any(contains_keyword(normalized, keyword) for keyword in keywords):
            return intent
    return None


def parse_choice(speech: str, digits: str, pack: LanguagePack) -> Optional[int]:
    """
    Map a keypad digit or spoken ordinal/number word to a menu choice

    Returns:
        The chosen digit (0-9), or None when nothing recognizable was said
    """
    if digits:
        first = digits.strip()[:1]
        return int(first) if first.isdigit() else None

    words = normalize_speech(speech, pack).split()
    for word in words:
        if word.isdigit() and len(word) == 1:
            return int(word)
        if word in pack.choice_words:
            return pack.choice_words[word]
    return None


def _hour_value(word: str, pack: LanguagePack) -> Optional[int]:
    if word.isdigit() and len(word) <= 2 and 0 < int(word) < 24:
        return int(word)
    return pack.hour_words.get(word)


def _minute_value(following: List[str], pack: LanguagePack) -> Optional[int]:
    if not following:
        return None
    if following[0].isdigit() and len(following[0]) == 2 and int(following[0]) < 60:
        return int(following[0])
    for size in (3, 2, 1):
        if len(following) >= size:
            minute = pack.minute_words.get(" ".join(following[:size]))
            if minute is not None:
                return minute
    return None


def spoken_time(speech: str, pack: LanguagePack) -> Optional[Tuple[int, int]]:
    """
    Clock time named in speech ("one thirty", "9:30", "las diez y media")

    An hour only counts when minutes or an o'clock/am/pm marker follow
    it, so a bare "two" stays a menu choice.

    Returns:
        (hour, minute) as spoken, or None
    """
    words = normalize_speech(speech, pack).split()
    for index, word in enumerate(words):
        hour = _hour_value(word, pack)
        if hour is None:
            continue
        minute = _minute_value(words[index + 1:index + 4], pack)
        if minute is not None:
            return hour, minute
    return None


def slot_for_time(spoken: Tuple[int, int], slots: List[str]) -> Optional[int]:
    """1-based position of the one offered "HH:MM" slot at the spoken time"""
    hour, minute = spoken
    matches = [
        position for position, key in enumerate(slots, 1)
        if int(key[:2]) % 12 == hour % 12 and int(key[3:5]) == minute
    ]
    return matches[0] if len(matches) == 1 else None


def mentions_any(text: str, phrases: List[str], pack: LanguagePack) -> bool:
    normalized = normalize_speech(text, pack)
    return any(re.search(rf"\b{re.escape(fold_accents(p.lower()))}\b", normalized) for p in phrases)


_NAME_PREFIXES = re.compile(
    r"^(?:my name is|my name's|this is|it's|it is|i am|i'm|"
    r"me llamo|mi nombre es|soy)\s+",
    re.IGNORECASE,
)


def extract_name(speech: str) -> str:
    """Caller's name from a transcript, without lead-in phrases"""
    name = (speech or "").strip().rstrip(".!?,")
    name = _NAME_PREFIXES.sub("", name).strip()
    return " ".join(part[:1].upper() + part[1:] for part in name.split())
