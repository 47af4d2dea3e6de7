"""Typed payloads carried on the event bus."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from .intent import FormAction, Scope


class SetFieldEvent(BaseModel):
    scope: Scope
    field: str
    value: str


class ActionEvent(BaseModel):
    scope: Scope
    action: FormAction


class NavigateEvent(BaseModel):
    path: str


class StepChangedEvent(BaseModel):
    step: int


class LocationDetectedEvent(BaseModel):
    address: str
    city: str


class TraceEvent(BaseModel):
    type: str  # transition | stt | nlu_call | nlu_response | commit | error
    session_id: str = ""
    state: str = ""
    data: dict[str, Any] = {}
    timestamp: float = Field(default_factory=time.time)
