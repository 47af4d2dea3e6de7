"""Utterance normalization and yes/no/skip/keep/change predicates.

All predicates are pure and return ``False`` for empty input. A false
negative is harmless: the dialogue engine simply re-prompts.
"""

from __future__ import annotations

import re

from voice_booking.config import settings

_WHITESPACE = re.compile(r"\s+")

_AFFIRMATIVE = re.compile(r"\b(yes|yeah|yep|yup|sure|correct|right|confirm|ok|okay|han|haan)\b")
_NEGATIVE = re.compile(r"\b(no|nope|nah|wrong|incorrect|cancel|nahi)\b")
_SKIP = re.compile(r"\b(skip|leave it|not now|none)\b")
_KEEP = re.compile(r"\b(keep|leave|same)\b")
_CHANGE = re.compile(r"\b(change|update|replace|edit)\b")
_DETECT_LOCATION = re.compile(
    r"\b(detect|use|get) (my )?(current )?location\b"
    r"|\b(auto|current) location\b"
    r"|\b(pickup )?location\b"
)


def normalize(raw: str | None, wake_phrase: str | None = None) -> str:
    """Lowercase, trim, collapse whitespace and strip a leading wake phrase."""
    if not raw:
        return ""
    text = _WHITESPACE.sub(" ", raw.strip().lower())
    phrase = (settings.wake_phrase if wake_phrase is None else wake_phrase).strip().lower()
    if phrase and text.startswith(phrase):
        text = text[len(phrase):].lstrip(" ,.!?")
    return text


def strip_wake_phrase(raw: str, wake_phrase: str | None = None) -> str:
    """Remove the wake phrase but keep the original casing (for values)."""
    phrase = (settings.wake_phrase if wake_phrase is None else wake_phrase).strip()
    if not phrase:
        return raw.strip()
    cleaned = re.sub(rf"^\s*{re.escape(phrase)}\b", "", raw, flags=re.IGNORECASE)
    return _WHITESPACE.sub(" ", cleaned).strip(" ,.!?")


def _matches(pattern: re.Pattern[str], text: str) -> bool:
    if not text or not text.strip():
        return False
    return bool(pattern.search(text.lower()))


def is_affirmative(text: str) -> bool:
    return _matches(_AFFIRMATIVE, text)


def is_negative(text: str) -> bool:
    return _matches(_NEGATIVE, text)


def is_skip(text: str) -> bool:
    return _matches(_SKIP, text)


def is_keep(text: str) -> bool:
    return _matches(_KEEP, text)


def is_change(text: str) -> bool:
    return _matches(_CHANGE, text)


def is_detect_location(text: str) -> bool:
    return _matches(_DETECT_LOCATION, text)
