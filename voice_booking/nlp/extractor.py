"""Field value extraction from free-form utterances.

``extract(field_id, raw)`` returns a best-effort typed value for a booking
field. Unparseable input degrades to the trimmed verbatim text instead of
failing: the guided engine always reads the value back for confirmation
before committing it, so a literal transcript is an acceptable worst case.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from voice_booking.config import settings
from voice_booking.flows.courier_booking import CITY_FIELDS, PHONE_FIELDS

log = logging.getLogger("voice_booking.extractor")

NUMERIC_FIELDS = frozenset({"weight", "dimensions.length", "dimensions.width", "dimensions.height"})

_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
_AMPM_TIME = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b")
_BARE_TIME = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_ORDINAL = re.compile(r"\b(\d{1,2})(st|nd|rd|th)\b")

# Free-text date formats tried in order. Two-digit years are never guessed.
_DATE_FORMATS_WITH_YEAR = ("%d %B %Y", "%B %d %Y", "%d %b %Y", "%b %d %Y")
_DATE_FORMATS_NO_YEAR = ("%d %B", "%B %d", "%d %b", "%b %d")


def extract(
    field_id: str,
    raw: Optional[str],
    today: Optional[date] = None,
    cities: Optional[Iterable[str]] = None,
    min_phone_digits: Optional[int] = None,
) -> Optional[str]:
    """Extract a value for ``field_id`` from ``raw``.

    Returns ``None`` only for blank input; otherwise a normalized value or
    the trimmed raw text.
    """
    text = (raw or "").strip()
    if not text:
        return None

    try:
        if field_id in PHONE_FIELDS:
            return extract_phone(text, min_phone_digits) or text
        if field_id in NUMERIC_FIELDS:
            return extract_number(text) or text
        if field_id == "pickupDate":
            return parse_date(text, today) or text
        if field_id == "pickupTime":
            return parse_time(text) or text
        if field_id in CITY_FIELDS:
            return match_city(text, cities) or text
        if field_id == "deliverySpeed":
            return canonical_speed(text) or text
        if field_id == "packageType":
            return canonical_package_type(text) or text
    except Exception:
        log.exception("Extraction failed for field %s", field_id)
    return text


def extract_digits(text: str) -> str:
    return re.sub(r"\D+", "", text or "")


def extract_phone(text: str, min_digits: Optional[int] = None) -> Optional[str]:
    """Digits of a phone number, or ``None`` when too few digits were heard."""
    threshold = settings.min_phone_digits if min_digits is None else min_digits
    digits = extract_digits(text)
    return digits if len(digits) >= threshold else None


def extract_number(text: str) -> Optional[str]:
    """First integer or decimal in ``text`` ("5 kilos" -> "5")."""
    match = _NUMBER.search(text or "")
    return match.group(1) if match else None


def parse_date(value: str, today: Optional[date] = None) -> Optional[str]:
    """Normalize a spoken date to ``YYYY-MM-DD``."""
    today = today or date.today()
    v = value.strip().lower()
    if not v:
        return None

    if re.search(r"\btoday\b", v):
        return today.isoformat()
    if re.search(r"\btomorrow\b", v):
        return (today + timedelta(days=1)).isoformat()

    iso = _ISO_DATE.search(v)
    if iso:
        return _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    slash = _SLASH_DATE.search(v)
    if slash:
        day, month, year = int(slash.group(1)), int(slash.group(2)), int(slash.group(3))
        return _safe_date(year, month, day)

    cleaned = _ORDINAL.sub(r"\1", v)
    cleaned = re.sub(r"\b(of|the|on)\b", " ", cleaned).replace(",", " ")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    for fmt in _DATE_FORMATS_WITH_YEAR:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    for fmt in _DATE_FORMATS_NO_YEAR:
        try:
            parsed = datetime.strptime(f"{cleaned} {today.year}", f"{fmt} %Y")
            return parsed.date().isoformat()
        except ValueError:
            continue

    return None


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_time(value: str) -> Optional[str]:
    """Normalize a spoken time to 24-hour ``HH:MM``.

    12pm is noon (12:00) and 12am is midnight (00:00).
    """
    v = value.strip().lower().replace("a.m.", "am").replace("p.m.", "pm")
    if not v:
        return None

    if re.search(r"\bnoon\b", v):
        return "12:00"
    if re.search(r"\bmidnight\b", v):
        return "00:00"

    ampm = _AMPM_TIME.search(v)
    if ampm:
        hh = int(ampm.group(1))
        mm = int(ampm.group(2) or 0)
        if not 1 <= hh <= 12 or mm > 59:
            return None
        if ampm.group(3) == "pm" and hh < 12:
            hh += 12
        if ampm.group(3) == "am" and hh == 12:
            hh = 0
        return f"{hh:02d}:{mm:02d}"

    bare = _BARE_TIME.search(v)
    if bare:
        hh, mm = int(bare.group(1)), int(bare.group(2))
        if hh > 23 or mm > 59:
            return None
        return f"{hh:02d}:{mm:02d}"

    return None


def match_city(text: str, cities: Optional[Iterable[str]] = None) -> Optional[str]:
    """Canonical gazetteer name of the first known city mentioned in ``text``."""
    lower = text.lower()
    for city in cities if cities is not None else settings.known_cities:
        if city.lower() in lower:
            return city
    return None


def canonical_speed(text: str) -> Optional[str]:
    lower = text.lower()
    if "fast" in lower or "urgent" in lower:
        return "fast-track"
    if "express" in lower or "quick" in lower:
        return "express"
    if "standard" in lower or "normal" in lower or "regular" in lower:
        return "standard"
    return None


def canonical_package_type(text: str) -> Optional[str]:
    lower = text.lower()
    if "document" in lower or re.search(r"\bdocs?\b", lower):
        return "document"
    if "fragile" in lower:
        return "fragile"
    if "electron" in lower:
        return "electronics"
    if "food" in lower:
        return "food"
    if "parcel" in lower or "package" in lower or "box" in lower:
        return "parcel"
    return None
