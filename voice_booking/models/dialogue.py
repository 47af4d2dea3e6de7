"""Dialogue state owned by the guided booking engine."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AwaitingMode(str, Enum):
    """What kind of reply the engine expects for the field in flight."""

    NONE = "none"
    KEEP_OR_CHANGE = "keep-or-change"
    VALUE = "value"
    CONFIRM = "confirm"
    CONFIRM_DETECTED_LOCATION = "confirm-detected-location"


class DetectedLocation(BaseModel):
    address: str
    city: str


class DialogueState(BaseModel):
    """Mutable guided-booking state.

    At most one field is in flight at a time: ``field`` / ``label`` describe
    it and ``awaiting`` says what the engine is waiting for.
    """

    enabled: bool = False
    step: int = 1
    index: int = 0
    awaiting: AwaitingMode = AwaitingMode.NONE
    field: Optional[str] = None
    label: Optional[str] = None
    candidate: Optional[str] = None
    prefilled: Optional[str] = None
    detected: Optional[DetectedLocation] = None

    def reset(self, step: int, enabled: bool = True) -> None:
        """Start afresh at the first field of ``step``."""
        self.enabled = enabled
        self.step = step
        self.index = 0
        self.clear_field()

    def clear_field(self) -> None:
        self.awaiting = AwaitingMode.NONE
        self.field = None
        self.label = None
        self.candidate = None
        self.prefilled = None
        self.detected = None
