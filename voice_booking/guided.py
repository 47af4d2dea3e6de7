"""Guided booking: the per-field ask / confirm state machine.

The engine walks the fields of the current booking step in order. For each
field it runs one small cycle::

    none --ask--> keep-or-change     (field already has a value)
    none --ask--> value              (field is empty)
    keep-or-change --keep/yes--> advance
    keep-or-change --change--> value
    value --utterance--> confirm     (candidate spoken back)
    value --"detect my location"--> value   (pickupAddress only; host detects)
    confirm --yes--> commit set-field, advance
    confirm --no--> value
    confirm --other--> confirm       (new candidate)
    confirm-detected-location --yes--> commit address + city, skip both slots
    confirm-detected-location --no--> value

The engine never crosses a step boundary on its own: when the last field of
a step is done it says so and waits for an explicit "next" or "back". It does
no network I/O; every value it commits has been read back to the user.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from voice_booking.events import EventBus
from voice_booking.flows.courier_booking import FLOW_DEF
from voice_booking.flows.schema import BookingFlowDef, FieldDescriptor
from voice_booking.form_store import FormReader
from voice_booking.models.dialogue import AwaitingMode, DetectedLocation, DialogueState
from voice_booking.nlp import extractor
from voice_booking.nlp.normalizer import (
    is_affirmative,
    is_change,
    is_detect_location,
    is_keep,
    is_negative,
    is_skip,
    normalize,
)

log = logging.getLogger("voice_booking.guided")

Speaker = Callable[[str], None]

PICKUP_ADDRESS = "pickupAddress"
PICKUP_CITY = "pickupCity"


def is_empty_value(value: Optional[str]) -> bool:
    return not value or not value.strip()


class GuidedBooking:
    """Dialogue engine for guided booking.

    ``form`` is read for pre-filled values, ``bus`` receives set-field and
    action events, ``speak`` receives every prompt. The engine owns its
    ``DialogueState`` exclusively; nothing else mutates it.
    """

    def __init__(
        self,
        form: FormReader,
        bus: EventBus,
        speak: Speaker,
        flow: BookingFlowDef | None = None,
        session_id: str = "",
    ) -> None:
        self._form = form
        self._bus = bus
        self._speak = speak
        self._flow = flow or FLOW_DEF
        self.session_id = session_id
        self.state = DialogueState()

    # ── Public API ────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    @property
    def is_awaiting(self) -> bool:
        return self.state.enabled and self.state.awaiting is not AwaitingMode.NONE

    @property
    def scope(self) -> str:
        return self._flow.scope

    def current_descriptor(self) -> FieldDescriptor | None:
        fields = self._flow.fields_for(self.state.step)
        if 0 <= self.state.index < len(fields):
            return fields[self.state.index]
        return None

    def start(self, step: int = 1) -> None:
        """(Re)start guided booking at the first field of ``step``."""
        self.state.reset(step)
        log.info("Guided booking started at step %d", step)
        self._trace("transition", {"event": "start", "step": step})
        self.ask_current_field()

    def stop(self) -> None:
        """Disable guided booking and drop any field in flight."""
        if not self.state.enabled and self.state.awaiting is AwaitingMode.NONE:
            return
        self.state.reset(self.state.step, enabled=False)
        self._trace("transition", {"event": "stop"})
        log.info("Guided booking stopped")

    def ask_current_field(self) -> None:
        """Ask for the field at the current index (or announce step completion)."""
        state = self.state
        if not state.enabled:
            return

        descriptor = self.current_descriptor()
        if descriptor is None:
            state.clear_field()
            self._say(f"Step {state.step} complete. Say next to continue, or back.")
            self._trace("transition", {"event": "step_complete", "step": state.step})
            return

        state.field = descriptor.field
        state.label = descriptor.label
        state.candidate = None
        state.detected = None

        current = self._form.get_field(descriptor.field)
        if not is_empty_value(current):
            state.prefilled = current
            self._set_awaiting(AwaitingMode.KEEP_OR_CHANGE)
            self._say(
                f"I found {descriptor.label} already filled as {current}. "
                "Say keep, or say change."
            )
            return

        state.prefilled = None
        self._set_awaiting(AwaitingMode.VALUE)
        self._say(descriptor.prompt)

    def advance(self, slots: int = 1) -> None:
        self.state.index += slots
        self.state.clear_field()
        self.ask_current_field()

    def handle_reply(self, raw_text: str) -> bool:
        """Feed one utterance to the field in flight.

        Returns ``False`` when the engine is not waiting for anything, so the
        caller can route the utterance elsewhere.
        """
        if not self.is_awaiting:
            return False

        spoken = raw_text.strip()
        norm = normalize(spoken, wake_phrase="")
        awaiting = self.state.awaiting

        if awaiting is AwaitingMode.KEEP_OR_CHANGE:
            self._on_keep_or_change(norm)
        elif awaiting is AwaitingMode.CONFIRM_DETECTED_LOCATION:
            self._on_confirm_detected(norm)
        elif awaiting is AwaitingMode.VALUE:
            self._on_value(spoken, norm)
        elif awaiting is AwaitingMode.CONFIRM:
            self._on_confirm(spoken, norm)
        return True

    def offer_candidate(self, value: str) -> None:
        """Take ``value`` as the candidate for the field in flight and read it back."""
        descriptor = self.current_descriptor()
        if descriptor is None:
            return
        candidate = extractor.extract(descriptor.field, value) or value.strip()
        self.state.candidate = candidate
        self._set_awaiting(AwaitingMode.CONFIRM)
        self._say(f"You said {candidate}. Say yes to confirm, or no to repeat.")

    # ── External signals ──────────────────────────────────────

    def on_step_changed(self, step: int) -> None:
        """The host moved to ``step``; restart at its first field."""
        if not self.state.enabled or step < 1:
            return
        log.info("Host step changed: %d -> %d", self.state.step, step)
        self.state.reset(step)
        self._trace("transition", {"event": "step_changed", "step": step})
        self.ask_current_field()

    def on_location_detected(self, address: str, city: str) -> None:
        """A detected pickup location arrived; confirm it if pickupAddress is in flight."""
        state = self.state
        if not state.enabled or not address or not city:
            return
        if state.field != PICKUP_ADDRESS or state.awaiting is not AwaitingMode.VALUE:
            log.info("Detected location ignored (field=%s, awaiting=%s)", state.field, state.awaiting)
            return
        state.detected = DetectedLocation(address=address, city=city)
        self._set_awaiting(AwaitingMode.CONFIRM_DETECTED_LOCATION)
        self._say(
            f"I detected pickup address {address} in {city}. "
            "Say yes to use it, or no to enter manually."
        )

    # ── Internal: awaiting handlers ───────────────────────────

    def _on_keep_or_change(self, norm: str) -> None:
        if is_keep(norm) or is_affirmative(norm):
            self._say("Okay, keeping it.")
            self.advance()
            return
        if is_change(norm):
            descriptor = self.current_descriptor()
            self._set_awaiting(AwaitingMode.VALUE)
            self._say(f"Okay. {descriptor.prompt}" if descriptor else "Okay.")
            return
        self._say("Please say keep, or change.")

    def _on_confirm_detected(self, norm: str) -> None:
        state = self.state
        if is_affirmative(norm):
            detected = state.detected
            if detected is None:
                self._set_awaiting(AwaitingMode.VALUE)
                self.ask_current_field()
                return
            self._commit(PICKUP_ADDRESS, detected.address)
            self._commit(PICKUP_CITY, detected.city)
            self._say("Okay. Pickup location saved.")
            # pickupCity was filled too, so skip its slot as well
            self.advance(slots=2)
            return
        if is_negative(norm):
            state.detected = None
            self._set_awaiting(AwaitingMode.VALUE)
            self._say("Okay. Please say the pickup address.")
            return
        self._say("Please say yes to use it, or no to enter manually.")

    def _on_value(self, spoken: str, norm: str) -> None:
        descriptor = self.current_descriptor()
        if descriptor is None:
            self.state.clear_field()
            return

        if descriptor.optional and is_skip(norm):
            self._say("Okay, skipped.")
            self.advance()
            return

        if descriptor.field == PICKUP_ADDRESS and is_detect_location(norm):
            self._bus.action(self.scope, "detect-location")
            self._say("Okay. Detecting your pickup location now.")
            return

        self.offer_candidate(spoken)

    def _on_confirm(self, spoken: str, norm: str) -> None:
        descriptor = self.current_descriptor()
        if is_affirmative(norm):
            value = self.state.candidate or ""
            if descriptor and value:
                self._commit(descriptor.field, value)
            self._say("Saved.")
            self.advance()
            return
        if is_negative(norm):
            self.state.candidate = None
            self._set_awaiting(AwaitingMode.VALUE)
            self._say("Okay. Say it again.")
            return
        self.offer_candidate(spoken)

    # ── Internal: helpers ─────────────────────────────────────

    def _commit(self, field: str, value: str) -> None:
        self._bus.set_field(self.scope, field, value)
        self._trace("commit", {"field": field})
        log.info("Committed %s (step %d)", field, self.state.step)

    def _set_awaiting(self, mode: AwaitingMode) -> None:
        previous = self.state.awaiting
        self.state.awaiting = mode
        if previous is not mode:
            self._trace("transition", {
                "from": previous.value, "to": mode.value, "field": self.state.field,
            })

    def _say(self, text: str) -> None:
        self._speak(text)

    def _trace(self, event_type: str, data: dict) -> None:
        self._bus.trace(event_type, self.session_id, self.state.awaiting.value, data)
