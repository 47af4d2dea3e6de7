"""Step-specific extraction for conversational (free-form) booking.

Each conversation step knows which booking field it is after. The extractor
for a step returns the extracted fields, or ``None`` when it declines, which
is the signal to consult the NLU fallback instead.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from voice_booking.nlp import extractor

_NAME_FILLERS = re.compile(
    r"\b(my|name|is|i'm|im|call me|it's|its|this is|i am|me|here|receiver|called)\b",
    re.IGNORECASE,
)
_NAME_CHARS = re.compile(r"^[A-Za-z\s]+$")


def title_name(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split() if w)


def clean_name(text: str) -> Optional[str]:
    """Strip "my name is" style fillers; ``None`` unless it looks like a name."""
    stripped = _NAME_FILLERS.sub(" ", text)
    stripped = re.sub(r"\s+", " ", stripped).strip(" .,!?")
    words = stripped.split()
    if not words or len(words) > 3 or len(stripped) < 2:
        return None
    if not _NAME_CHARS.match(stripped):
        return None
    return title_name(stripped)


def _name(field: str) -> Callable[[str], Optional[dict[str, str]]]:
    def run(text: str) -> Optional[dict[str, str]]:
        name = clean_name(text)
        return {field: name} if name else None
    return run


def _phone(field: str) -> Callable[[str], Optional[dict[str, str]]]:
    def run(text: str) -> Optional[dict[str, str]]:
        phone = extractor.extract_phone(text)
        return {field: phone} if phone else None
    return run


def _city(field: str) -> Callable[[str], Optional[dict[str, str]]]:
    def run(text: str) -> Optional[dict[str, str]]:
        city = extractor.match_city(text)
        return {field: city} if city else None
    return run


def _address(field: str) -> Callable[[str], Optional[dict[str, str]]]:
    def run(text: str) -> Optional[dict[str, str]]:
        value = text.strip(" .")
        return {field: value} if len(value) >= 3 else None
    return run


def _package_type(text: str) -> Optional[dict[str, str]]:
    return {"packageType": extractor.canonical_package_type(text) or "parcel"}


def _weight(text: str) -> Optional[dict[str, str]]:
    number = extractor.extract_number(text)
    return {"weight": number} if number else None


def _speed(text: str) -> Optional[dict[str, str]]:
    return {"deliverySpeed": extractor.canonical_speed(text) or "standard"}


def _pickup_time(text: str) -> Optional[dict[str, str]]:
    data: dict[str, str] = {}
    pickup_date = extractor.parse_date(text)
    if pickup_date:
        data["pickupDate"] = pickup_date
    pickup_time = extractor.parse_time(text)
    if not pickup_time:
        hour = re.search(r"\bat (\d{1,2})\b", text.lower())
        if hour and int(hour.group(1)) <= 23:
            pickup_time = f"{int(hour.group(1)):02d}:00"
    if pickup_time:
        data["pickupTime"] = pickup_time
    return data or None


STEP_EXTRACTORS: dict[str, Callable[[str], Optional[dict[str, str]]]] = {
    "ask-name": _name("senderName"),
    "ask-phone": _phone("senderPhone"),
    "ask-pickup-city": _city("pickupCity"),
    "ask-pickup-address": _address("pickupAddress"),
    "ask-receiver-name": _name("receiverName"),
    "ask-receiver-phone": _phone("receiverPhone"),
    "ask-delivery-city": _city("dropoffCity"),
    "ask-delivery-address": _address("dropoffAddress"),
    "ask-package-type": _package_type,
    "ask-weight": _weight,
    "ask-delivery-speed": _speed,
    "ask-pickup-time": _pickup_time,
}


def extract_for_step(step_id: str, text: str) -> Optional[dict[str, str]]:
    """Fields extracted for ``step_id``, or ``None`` if the step declines."""
    run = STEP_EXTRACTORS.get(step_id)
    if run is None or not text or not text.strip():
        return None
    return run(text.strip())
