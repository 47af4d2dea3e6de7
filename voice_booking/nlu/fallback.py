"""Rule-based answers used when the language model is unavailable or fails."""

from __future__ import annotations

import logging
import re

from voice_booking.flows.conversational import FIRST_STEP, get_step, next_step_id
from voice_booking.models.nlu import NLUAction, NLURequest, NLUResponse
from voice_booking.nlp.step_extractors import clean_name, extract_for_step

log = logging.getLogger("voice_booking.nlu.fallback")


def _reply(intent: str, response: str, confidence: float = 0.95, **action) -> NLUResponse:
    action.setdefault("type", "none")
    return NLUResponse(
        intent=intent,
        action=NLUAction(**action),
        response=response,
        confidence=confidence,
    )


def smart_fallback(request: NLURequest) -> NLUResponse:
    """Best local guess for ``request``; always returns a usable response."""
    text = request.userText.strip()
    lower = text.lower()
    step = request.currentStep or "idle"
    log.info("Rule-based fallback (step=%s, page=%s)", step, request.currentPage)

    # On the booking page but idle: a short name-like answer starts the booking
    if request.currentPage == "/booking" and step == "idle" and "book" not in lower:
        name = clean_name(text)
        if name:
            return _reply(
                "booking_start",
                f"Great! I'll help you book, {name}. What's your phone number?",
                confidence=0.9,
                type="start_booking",
                extractedData={"senderName": name},
                nextStep="ask-phone",
            )

    # Data extraction while a conversational booking is in progress
    if get_step(step) is not None:
        extracted = extract_for_step(step, text)
        if extracted:
            nxt = next_step_id(step)
            follow = get_step(nxt)
            question = follow.question if follow and follow.question else ""
            return _reply(
                "booking_collect",
                f"Got it! {question}".strip(),
                confidence=0.9,
                type="extract_data",
                extractedData=extracted,
                nextStep=nxt,
            )

    if re.search(r"\b(hey|hi|hello|tracy)\b", lower):
        return _reply("general_chat", "Hi! I'm Tracy, your courier assistant. How can I help you today?")

    if re.search(r"\b(book|booking|parcel|package|delivery|courier|send|ship)\b", lower):
        return _reply(
            "booking_start",
            "Great! Let's book your delivery. What's your name?",
            type="start_booking",
            navigateTo="/booking",
            nextStep=FIRST_STEP,
        )

    if "track" in lower:
        return _reply("navigate", "Opening tracking page!", type="navigate", navigateTo="/tracking")
    if re.search(r"\b(dashboard|home)\b", lower):
        return _reply("navigate", "Going to dashboard!", type="navigate", navigateTo="/")
    if re.search(r"\b(profile|account)\b", lower):
        return _reply("navigate", "Opening your profile!", type="navigate", navigateTo="/profile")

    if re.search(r"\b(cost|price|rate|charge|fee)\b", lower):
        return _reply(
            "provide_info",
            "Rates depend on distance and speed. Documents start from PKR 150, "
            "parcels from PKR 250. Want to book?",
            confidence=0.9,
        )

    if re.search(r"\b(thanks|thank you|appreciate)\b", lower):
        return _reply("general_chat", "You're welcome! Anything else I can help with?")

    if not text:
        return NLUResponse.fallback()

    return _reply(
        "general_chat",
        "I'm your courier assistant! I can help with bookings, tracking, "
        "or answer questions. What do you need?",
        confidence=0.4,
    )
