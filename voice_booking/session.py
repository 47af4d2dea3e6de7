"""Per-conversation voice assistant: routes settled utterances to handlers.

Each VoiceAssistant owns one ConversationSession and:
  1. Resolves every utterance to an intent (local rules, NLU when configured)
  2. Runs commands (stop, help, start booking, next/back/submit, pay, go to)
  3. Feeds replies to the guided booking engine while a field is in flight
  4. Drives free-form (conversational) booking one question per step
  5. Returns the text to speak for each utterance (never empty)
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from voice_booking.config import settings
from voice_booking.events import Channel, EventBus
from voice_booking.flows.conversational import FIRST_STEP, get_step, next_step_id
from voice_booking.flows.courier_booking import FLOW_DEF
from voice_booking.flows.schema import BookingFlowDef
from voice_booking.form_store import FormReader
from voice_booking.guided import GuidedBooking, is_empty_value
from voice_booking.models.events import NavigateEvent
from voice_booking.models.intent import (
    BookingAction,
    Help,
    Intent,
    Navigate,
    PageAction,
    PaymentAction,
    SetField,
    StartBooking,
    Stop,
)
from voice_booking.models.nlu import NLUResponse
from voice_booking.models.session import ConversationSession, DialogueMode
from voice_booking.nlp import extractor
from voice_booking.nlp.intent_parser import ROUTES
from voice_booking.nlp.normalizer import is_affirmative, is_negative, normalize, strip_wake_phrase
from voice_booking.nlp.step_extractors import extract_for_step
from voice_booking.resolvers import IntentResolver, ResolveContext, build_resolver

log = logging.getLogger("voice_booking.session")

HELP_TEXT = (
    "You can say: go to booking, go to login, start booking, next, back, "
    "detect my location, or set fields like sender name is Ali."
)
NOT_CAUGHT = "Sorry, I didn't catch that. Try saying help."
GUIDED_INTRO = "I'll ask each field. After you answer, say yes to confirm."

_BOOKING_ACTION_REPLIES = {
    "next": "Okay, next.",
    "back": "Okay, going back.",
    "submit": "Okay. Proceeding to payment.",
    "detect-location": "Okay, detecting your pickup location.",
}
_PAGE_ACTION_REPLIES = {
    "login-submit": "Signing you in.",
    "signup-submit": "Creating your account.",
}
_EXPLICIT_CHANGE = re.compile(r"\b(change|update|replace|set)\b")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class VoiceAssistant:
    """One conversation's top-level intent handler.

    Typical lifecycle::

        assistant = VoiceAssistant(form=store, bus=bus)

        # Each settled utterance from the speech adapter
        reply = await assistant.handle_utterance("start booking")
        # → TTS speaks reply

        # Host signals, outside an utterance
        text = assistant.on_location_detected("12 Mall Road", "Lahore")
    """

    def __init__(
        self,
        form: FormReader,
        bus: EventBus,
        resolver: Optional[IntentResolver] = None,
        config=None,
        flow: BookingFlowDef | None = None,
        page: str = "/",
    ) -> None:
        self._config = config or settings
        self._form = form
        self._bus = bus
        self._flow = flow or FLOW_DEF
        self._resolver = resolver or build_resolver(self._config)
        self.page = page
        self.session = ConversationSession()

        # Everything said during one utterance, joined into a single reply
        self._buffer: list[str] = []
        self._handling = False

        self.guided = GuidedBooking(
            form, bus, self._buffer.append, flow=self._flow, session_id=self.session.session_id,
        )
        bus.subscribe(Channel.NAVIGATE, self._on_navigate)

    # ── Public API ────────────────────────────────────────────

    @property
    def mode(self) -> DialogueMode:
        return self.session.mode

    @property
    def busy(self) -> bool:
        return self._handling

    async def handle_utterance(self, text: str) -> str:
        """Process one settled utterance and return what to say."""
        self._buffer.clear()
        self._handling = True
        try:
            spoken = strip_wake_phrase(text or "", self._config.wake_phrase)
            if not normalize(spoken, wake_phrase=""):
                self._say("Yes? Say help to hear what I can do." if text and text.strip() else NOT_CAUGHT)
                return self._reply()

            context = self._context()
            self.session.add_turn("user", spoken)
            self._trace("stt", {"text": redact_pii(spoken), "page": self.page})
            log.info("Utterance (mode=%s, page=%s): %s",
                     self.session.mode.value, self.page, redact_pii(spoken))

            resolution = await self._resolver.resolve(spoken, context)
            if resolution.nlu is not None:
                self._trace("nlu_response", {
                    "intent": resolution.nlu.intent,
                    "action": resolution.nlu.action.type,
                    "confidence": resolution.nlu.confidence,
                })
            await self._dispatch(resolution.intent, spoken, resolution.nlu)
            return self._reply()
        finally:
            self._handling = False

    def on_step_changed(self, step: int) -> str:
        """Host step changed; returns the prompt to speak ("" if none)."""
        return self._capture(self.guided.on_step_changed, step)

    def on_location_detected(self, address: str, city: str) -> str:
        """Detected pickup location arrived; returns the confirmation prompt."""
        return self._capture(self.guided.on_location_detected, address, city)

    async def close(self) -> None:
        self._bus.unsubscribe(Channel.NAVIGATE, self._on_navigate)
        await self._resolver.close()

    # ── Dispatch ──────────────────────────────────────────────

    async def _dispatch(self, intent: Intent, spoken: str, nlu: Optional[NLUResponse]) -> None:
        if isinstance(intent, Stop):
            await self._stop()
            return
        if isinstance(intent, Help):
            self._say(HELP_TEXT)
            return
        if isinstance(intent, StartBooking):
            self._start_booking()
            return
        if isinstance(intent, BookingAction):
            self._say(_BOOKING_ACTION_REPLIES.get(intent.action, "Okay."))
            self._bus.action("booking", intent.action)
            return
        if isinstance(intent, PaymentAction):
            self._say("Okay. Processing payment now.")
            self._bus.action("payment", intent.action)
            return
        if isinstance(intent, PageAction):
            self._say(_PAGE_ACTION_REPLIES.get(intent.action, "Okay."))
            self._bus.action(intent.scope, intent.action)
            return

        if self.guided.is_awaiting:
            if isinstance(intent, Navigate) and intent.explicit:
                self._navigate(intent.path)
                return
            if isinstance(intent, SetField) and intent.scope == self.guided.scope:
                if intent.field == self.guided.state.field:
                    self.guided.offer_candidate(intent.value)
                else:
                    self._set_field(intent, spoken)
                return
            self.guided.handle_reply(spoken)
            return

        if self.session.mode is DialogueMode.FREE_FORM:
            if isinstance(intent, Navigate) and intent.explicit:
                self._navigate(intent.path)
                return
            if isinstance(intent, SetField):
                # At the summary every field is filled; a labeled value is an edit
                at_confirm = self.session.conversation_step == "confirm"
                self._set_field(intent, spoken, explicit=at_confirm)
                if at_confirm:
                    self._enter_step("confirm")
                return
            await self._free_form_turn(spoken, nlu)
            return

        if isinstance(intent, Navigate):
            self._navigate(intent.path)
            return
        if isinstance(intent, SetField):
            self._set_field(intent, spoken)
            return

        # Unknown
        if nlu is not None:
            await self._apply_nlu(nlu)
            return
        self._say(NOT_CAUGHT)

    # ── Handlers ──────────────────────────────────────────────

    async def _stop(self) -> None:
        old_id = self.session.session_id
        self.guided.stop()
        self.session = ConversationSession()
        self.guided.session_id = self.session.session_id
        await self._resolver.clear_session(old_id)
        log.info("Session ended: %s", old_id)
        self._say("Okay.")

    def _start_booking(self, intro: str = "Opening booking.") -> None:
        if self.page != "/booking":
            self._bus.navigate("/booking")
        if self._config.booking_style == "conversational":
            self.guided.stop()
            self.session.mode = DialogueMode.FREE_FORM
            self.session.conversation_step = FIRST_STEP
            self._say("Great! Let's book your delivery. What's your name?")
            return
        self.session.mode = DialogueMode.GUIDED_BOOKING
        self._say(f"{intro} {GUIDED_INTRO}")
        self.guided.start(1)

    def _navigate(self, path: str) -> None:
        if path == "/booking":
            self._start_booking(intro="Booking page opened.")
            return
        if self.guided.enabled or self.session.mode is not DialogueMode.IDLE:
            self.guided.stop()
            self.session.mode = DialogueMode.IDLE
        self._bus.navigate(path)
        self._say(f"Opening {path.rstrip('/').rsplit('/', 1)[-1] or 'home'}.")

    def _set_field(self, intent: SetField, spoken: str, explicit: bool = False) -> None:
        explicit = explicit or bool(_EXPLICIT_CHANGE.search(normalize(spoken)))
        if intent.scope == "booking" and not explicit:
            if not is_empty_value(self._form.get_field(intent.field)):
                self._say("That field is already filled. Say change to update it.")
                return
        value = extractor.extract(intent.field, intent.value) or intent.value
        self._bus.set_field(intent.scope, intent.field, value)
        self._say("Got it.")

    # ── Free-form booking ─────────────────────────────────────

    async def _free_form_turn(self, spoken: str, nlu: Optional[NLUResponse]) -> None:
        step = self.session.conversation_step

        if step == "confirm":
            norm = normalize(spoken)
            if is_affirmative(norm):
                await self._complete_booking()
                return
            if is_negative(norm):
                self._say("Okay. Tell me what to change, for example: receiver phone is 03001234567.")
                return

        extracted = extract_for_step(step, spoken)
        if extracted:
            self._commit_fields(extracted)
            self._enter_step(next_step_id(step), prefix="Got it!")
            return

        if nlu is None:
            nlu = await self._resolver.escalate(spoken, self._context())
        await self._apply_nlu(nlu)

    async def _apply_nlu(self, nlu: NLUResponse) -> None:
        action = nlu.action
        self._commit_fields(nlu.extracted)

        if action.navigateTo in ROUTES and action.navigateTo != self.page:
            self._bus.navigate(action.navigateTo)

        next_step = action.nextStep
        if action.type == "confirm" or next_step == "complete":
            if self.session.mode is DialogueMode.FREE_FORM:
                await self._complete_booking(nlu.response)
            else:
                self._say(nlu.response or NOT_CAUGHT)
            return
        if next_step and get_step(next_step) is not None and not self.guided.enabled:
            self.session.mode = DialogueMode.FREE_FORM
            self.session.conversation_step = next_step
        self._say(nlu.response or NOT_CAUGHT)

    def _commit_fields(self, values: dict[str, str]) -> None:
        for field, value in values.items():
            if self._flow.find(field) is None:
                log.debug("Ignoring extracted value for unknown field %s", field)
                continue
            self._bus.set_field("booking", field, extractor.extract(field, value) or value)

    def _enter_step(self, step: str, prefix: str = "") -> None:
        self.session.conversation_step = step
        if step == "confirm":
            question = f"{self._summary()} Shall I confirm the booking? Say yes or no."
        else:
            conv = get_step(step)
            question = conv.question if conv else ""
        self._say(f"{prefix} {question}".strip())

    async def _complete_booking(self, reply: str = "") -> None:
        self._finish_free_form()
        old_id = self.session.session_id
        self.session = ConversationSession()
        self.guided.session_id = self.session.session_id
        await self._resolver.clear_session(old_id)
        self._say(reply or "Perfect! Your booking is confirmed. You'll receive a confirmation SMS shortly.")

    def _finish_free_form(self) -> None:
        self._bus.action("booking", "submit")
        self.session.mode = DialogueMode.IDLE
        self.session.conversation_step = "complete"
        log.info("Free-form booking submitted (session %s)", self.session.session_id)

    def _summary(self) -> str:
        get = self._form.get_field
        parts = []
        if get("senderName") and get("receiverName"):
            parts.append(f"From {get('senderName')} to {get('receiverName')}")
        if get("pickupCity") and get("dropoffCity"):
            parts.append(f"{get('pickupCity')} to {get('dropoffCity')}")
        if get("deliverySpeed"):
            parts.append(f"{get('deliverySpeed')} delivery")
        return (", ".join(parts) + ".") if parts else "Let me confirm your booking details."

    # ── Internal ──────────────────────────────────────────────

    def _context(self) -> ResolveContext:
        free_form = self.session.mode is DialogueMode.FREE_FORM
        return ResolveContext(
            page=self.page,
            awaiting=self.guided.is_awaiting or free_form,
            step=self.session.conversation_step if free_form else "idle",
            session_id=self.session.session_id,
            history=self.session.recent(self._config.nlu_history_turns),
            form=self._snapshot(),
        )

    def _snapshot(self) -> dict[str, Any]:
        snapshot = getattr(self._form, "snapshot", None)
        return snapshot() if callable(snapshot) else {}

    def _on_navigate(self, event: NavigateEvent) -> None:
        self.page = event.path

    def _capture(self, signal, *args) -> str:
        mark = len(self._buffer)
        signal(*args)
        said = " ".join(self._buffer[mark:])
        if not self._handling:
            # Outside an utterance the caller speaks the text itself
            del self._buffer[mark:]
        return said

    def _say(self, text: str) -> None:
        if text:
            self._buffer.append(text)

    def _reply(self) -> str:
        reply = " ".join(self._buffer) or NOT_CAUGHT
        self._buffer.clear()
        self.session.add_turn("assistant", reply)
        return reply

    def _trace(self, event_type: str, data: dict) -> None:
        self._bus.trace(event_type, self.session.session_id, self.session.mode.value, data)
