"""In-memory form store: the host-side collaborator of the assistant.

Real deployments bind the assistant to their own UI state; this store plays
that role for the console runner and the tests. It listens for set-field and
action events on the bus and answers ``get_field`` lookups, including dotted
paths for nested values (``dimensions.length``). Writes are plain overwrites:
the latest write wins, whether it came from typed input or from the
assistant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import BaseModel, Field

from voice_booking.events import Channel, EventBus
from voice_booking.models.dialogue import DetectedLocation
from voice_booking.models.events import (
    ActionEvent,
    LocationDetectedEvent,
    SetFieldEvent,
    StepChangedEvent,
)

log = logging.getLogger("voice_booking.form_store")

Locator = Callable[[], Awaitable[Optional[DetectedLocation]]]


class FormReader(Protocol):
    """What the dialogue engine needs from the host form."""

    def get_field(self, field: str) -> str: ...


class Dimensions(BaseModel):
    length: str = ""
    width: str = ""
    height: str = ""


class BookingForm(BaseModel):
    """Booking form values, all kept as the strings the UI would hold."""

    senderName: str = ""
    senderPhone: str = ""
    pickupAddress: str = ""
    pickupCity: str = ""
    receiverName: str = ""
    receiverPhone: str = ""
    dropoffAddress: str = ""
    dropoffCity: str = ""
    packageType: str = ""
    weight: str = ""
    dimensions: Dimensions = Field(default_factory=Dimensions)
    deliverySpeed: str = "standard"
    pickupDate: str = ""
    pickupTime: str = ""


class InMemoryFormStore:
    """Booking form plus login/signup/payment field maps, driven by bus events."""

    def __init__(
        self,
        bus: EventBus,
        step_count: int = 4,
        locator: Optional[Locator] = None,
    ) -> None:
        self._bus = bus
        self._step_count = step_count
        self._locator = locator
        self.booking = BookingForm()
        self.pages: dict[str, dict[str, str]] = {"login": {}, "signup": {}, "payment": {}, "global": {}}
        self.step = 1
        self.submitted: list[str] = []  # scopes that received a submit/pay action
        self._pending: set[asyncio.Task] = set()

        bus.subscribe(Channel.SET_FIELD, self._on_set_field)
        bus.subscribe(Channel.ACTION, self._on_action)

    # ── Field access ───────────────────────────────────────────

    def get_field(self, field: str, scope: str = "booking") -> str:
        if scope != "booking":
            return self.pages.get(scope, {}).get(field, "")
        target: Any = self.booking
        for part in field.split("."):
            target = getattr(target, part, None)
            if target is None:
                return ""
        return str(target) if not isinstance(target, BaseModel) else ""

    def set_field(self, field: str, value: str, scope: str = "booking") -> None:
        """Overwrite one field; unknown booking fields are ignored with a warning."""
        if scope != "booking":
            self.pages.setdefault(scope, {})[field] = value
            return
        *parents, leaf = field.split(".")
        target: Any = self.booking
        for part in parents:
            target = getattr(target, part, None)
            if not isinstance(target, BaseModel):
                log.warning("Unknown booking field: %s", field)
                return
        if leaf not in type(target).model_fields:
            log.warning("Unknown booking field: %s", field)
            return
        setattr(target, leaf, value)

    def snapshot(self) -> dict[str, Any]:
        return self.booking.model_dump()

    def go_to_step(self, step: int) -> None:
        """Move the host UI to ``step`` and announce it (manual navigation too)."""
        step = max(1, min(self._step_count, step))
        if step == self.step:
            return
        self.step = step
        self._bus.publish(Channel.STEP_CHANGED, StepChangedEvent(step=step))

    # ── Bus handlers ───────────────────────────────────────────

    def _on_set_field(self, event: SetFieldEvent) -> None:
        self.set_field(event.field, event.value, scope=event.scope)

    def _on_action(self, event: ActionEvent) -> None:
        if event.action == "next":
            self.go_to_step(self.step + 1)
        elif event.action == "back":
            self.go_to_step(self.step - 1)
        elif event.action == "detect-location":
            self._start_detection()
        elif event.action in ("submit", "pay", "login-submit", "signup-submit"):
            self.submitted.append(event.scope)
            log.info("Form %s submitted (%s)", event.scope, event.action)

    def _start_detection(self) -> None:
        if self._locator is None:
            log.warning("Location detection requested but no locator is configured")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("Location detection needs a running event loop")
            return
        task = loop.create_task(self._detect())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _detect(self) -> None:
        try:
            location = await self._locator()
        except Exception:
            log.exception("Location detection failed")
            return
        if location is None:
            log.info("Location detection returned nothing")
            return
        self._bus.publish(
            Channel.LOCATION_DETECTED,
            LocationDetectedEvent(address=location.address, city=location.city),
        )
