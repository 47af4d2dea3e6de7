"""Step chain for free-form (conversational) booking.

Unlike the guided flow, the conversational mode asks one open question per
step and lets the local step extractor (or the NLU fallback) pull the value
out of whatever the user says. ``nextStep`` values in NLU responses use the
same identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ConversationStep:
    id: str
    field: str        # booking field this step fills ("" for confirm/complete)
    question: str     # asked on entering the step


CONVERSATION_STEPS: list[ConversationStep] = [
    ConversationStep("ask-name", "senderName", "What's your name?"),
    ConversationStep("ask-phone", "senderPhone", "What's your phone number?"),
    ConversationStep("ask-pickup-city", "pickupCity", "Which city should we pick up from?"),
    ConversationStep("ask-pickup-address", "pickupAddress", "What's the pickup address?"),
    ConversationStep("ask-receiver-name", "receiverName", "Who is receiving this package?"),
    ConversationStep("ask-receiver-phone", "receiverPhone", "What's the receiver's phone number?"),
    ConversationStep("ask-delivery-city", "dropoffCity", "Which city should we deliver to?"),
    ConversationStep("ask-delivery-address", "dropoffAddress", "What's the delivery address?"),
    ConversationStep(
        "ask-package-type",
        "packageType",
        "What type of package? Document, parcel, fragile, electronics, or food?",
    ),
    ConversationStep("ask-weight", "weight", "What's the weight in kilograms?"),
    ConversationStep(
        "ask-delivery-speed",
        "deliverySpeed",
        "What delivery speed? Standard, express, or fast-track?",
    ),
    ConversationStep(
        "ask-pickup-time",
        "pickupTime",
        "When should we pick up? Today, tomorrow, or a specific time?",
    ),
    ConversationStep("confirm", "", "Shall I confirm the booking? Say yes or no."),
    ConversationStep("complete", "", ""),
]

STEP_IDS = [s.id for s in CONVERSATION_STEPS]
FIRST_STEP = CONVERSATION_STEPS[0].id
_BY_ID = {s.id: s for s in CONVERSATION_STEPS}


def get_step(step_id: str) -> ConversationStep | None:
    return _BY_ID.get(step_id)


def next_step_id(step_id: str) -> str:
    """The step after ``step_id``; ``complete`` stays ``complete``."""
    if step_id not in _BY_ID:
        return FIRST_STEP
    idx = STEP_IDS.index(step_id)
    return STEP_IDS[min(idx + 1, len(STEP_IDS) - 1)]
