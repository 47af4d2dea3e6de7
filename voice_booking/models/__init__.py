"""Data models for the voice booking assistant."""

from .dialogue import AwaitingMode, DetectedLocation, DialogueState
from .events import (
    ActionEvent,
    LocationDetectedEvent,
    NavigateEvent,
    SetFieldEvent,
    StepChangedEvent,
    TraceEvent,
)
from .intent import (
    BookingAction,
    Help,
    Intent,
    Navigate,
    PageAction,
    PaymentAction,
    SetField,
    StartBooking,
    Stop,
    Unknown,
)
from .nlu import NLUAction, NLURequest, NLUResponse
from .session import ConversationSession, DialogueMode, Turn

__all__ = [
    "ActionEvent",
    "AwaitingMode",
    "BookingAction",
    "ConversationSession",
    "DetectedLocation",
    "DialogueMode",
    "DialogueState",
    "Help",
    "Intent",
    "LocationDetectedEvent",
    "NLUAction",
    "NLURequest",
    "NLUResponse",
    "Navigate",
    "NavigateEvent",
    "PageAction",
    "PaymentAction",
    "SetField",
    "SetFieldEvent",
    "StartBooking",
    "StepChangedEvent",
    "Stop",
    "TraceEvent",
    "Turn",
    "Unknown",
]
