"""Conversation session model."""

from __future__ import annotations

import secrets
import time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

# Trim the spoken history once it outgrows MAX_TURNS
MAX_TURNS = 200
TRIMMED_TURNS = 100


class DialogueMode(str, Enum):
    IDLE = "idle"
    GUIDED_BOOKING = "guided-booking"
    FREE_FORM = "free-form"


class Turn(BaseModel):
    speaker: Literal["user", "assistant"]
    text: str


class ConversationSession(BaseModel):
    """One conversational context, from activation until stop or completion."""

    session_id: str = Field(default_factory=lambda: secrets.token_urlsafe(18))
    history: list[Turn] = []
    mode: DialogueMode = DialogueMode.IDLE
    conversation_step: str = "idle"  # free-form booking step, e.g. "ask-name"
    created_at: float = Field(default_factory=time.time)

    def add_turn(self, speaker: Literal["user", "assistant"], text: str) -> None:
        self.history.append(Turn(speaker=speaker, text=text))
        if len(self.history) > MAX_TURNS:
            self.history = self.history[-TRIMMED_TURNS:]

    def recent(self, turns: int) -> list[Turn]:
        """Last ``turns`` entries of the history (the bounded NLU window)."""
        if turns <= 0:
            return []
        return list(self.history[-turns:])
