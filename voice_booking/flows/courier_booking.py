"""Four-step courier booking flow.

The canonical definition lives in ``courier_booking.jsonl`` next to this
module: sender (1), receiver (2), package (3) and delivery schedule (4).
"""

from __future__ import annotations

from pathlib import Path

from voice_booking.flows.loader import load_flow_jsonl
from voice_booking.flows.schema import BookingFlowDef, FieldDescriptor

_JSONL_PATH = Path(__file__).resolve().parent / "courier_booking.jsonl"

FLOW_DEF: BookingFlowDef = load_flow_jsonl(_JSONL_PATH)

FLOW_ID = FLOW_DEF.id
STEP_COUNT = len(FLOW_DEF.steps)

PHONE_FIELDS = frozenset({"senderPhone", "receiverPhone"})
CITY_FIELDS = frozenset({"pickupCity", "dropoffCity"})


def step_fields(step: int) -> tuple[FieldDescriptor, ...]:
    return FLOW_DEF.fields_for(step)
