"""Tests for VoiceAssistant: the per-conversation utterance handler."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from voice_booking.config import Settings
from voice_booking.events import Channel, EventBus
from voice_booking.form_store import InMemoryFormStore
from voice_booking.models.nlu import NLUAction, NLUResponse
from voice_booking.models.session import MAX_TURNS, TRIMMED_TURNS, ConversationSession, DialogueMode
from voice_booking.nlp.intent_parser import LOGIN_PAGE
from voice_booking.nlu.base import NLUClassifier
from voice_booking.nlu.client import RemoteNLUClient
from voice_booking.resolvers import HybridIntentResolver, PatternIntentResolver
from voice_booking.session import (
    GUIDED_INTRO,
    HELP_TEXT,
    NOT_CAUGHT,
    VoiceAssistant,
    redact_pii,
)


def make_config(**overrides):
    values = dict(intent_resolver="pattern", llm_provider="none", booking_style="guided")
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_assistant(resolver=None, page="/", prefill=None, **config):
    bus = EventBus()
    form = InMemoryFormStore(bus)
    for field, value in (prefill or {}).items():
        form.set_field(field, value)
    assistant = VoiceAssistant(
        form, bus, resolver=resolver or PatternIntentResolver(), config=make_config(**config), page=page,
    )
    return assistant, form, bus


def follow_steps(assistant, bus):
    """Wire host step changes back into the assistant the way the runtime does."""
    bus.subscribe(Channel.STEP_CHANGED, lambda e: assistant.on_step_changed(e.step))


class TestGuidedBooking:
    @pytest.mark.asyncio
    async def test_ali_scenario(self):
        assistant, form, bus = make_assistant()

        reply = await assistant.handle_utterance("Hey Tracy, start booking")
        assert reply == f"Opening booking. {GUIDED_INTRO} Sender name?"
        assert assistant.page == "/booking"
        assert assistant.mode is DialogueMode.GUIDED_BOOKING

        assert await assistant.handle_utterance("Ali") == "You said Ali. Say yes to confirm, or no to repeat."
        assert await assistant.handle_utterance("yes") == "Saved. Sender phone number?"
        assert form.get_field("senderName") == "Ali"

    @pytest.mark.asyncio
    async def test_go_to_booking_starts_guided(self):
        assistant, _, _ = make_assistant()
        reply = await assistant.handle_utterance("go to booking")
        assert reply == f"Booking page opened. {GUIDED_INTRO} Sender name?"

    @pytest.mark.asyncio
    async def test_next_speaks_ack_then_prompt(self):
        assistant, form, bus = make_assistant()
        follow_steps(assistant, bus)
        await assistant.handle_utterance("start booking")

        reply = await assistant.handle_utterance("next")
        assert reply == "Okay, next. Receiver name?"
        assert form.step == 2

    @pytest.mark.asyncio
    async def test_bare_alias_is_a_reply(self):
        assistant, _, _ = make_assistant()
        await assistant.handle_utterance("start booking")
        reply = await assistant.handle_utterance("home")
        assert reply.startswith("You said ")
        assert assistant.page == "/booking"

    @pytest.mark.asyncio
    async def test_explicit_navigation_leaves_booking(self):
        assistant, _, bus = make_assistant()
        await assistant.handle_utterance("start booking")
        reply = await assistant.handle_utterance("go to tracking")
        assert reply == "Opening tracking."
        assert assistant.page == "/tracking"
        assert assistant.mode is DialogueMode.IDLE
        assert not assistant.guided.enabled

    @pytest.mark.asyncio
    async def test_labeled_value_for_field_in_flight(self):
        assistant, _, _ = make_assistant()
        await assistant.handle_utterance("start booking")
        reply = await assistant.handle_utterance("sender name is Sara Khan")
        assert reply == "You said Sara Khan. Say yes to confirm, or no to repeat."

    @pytest.mark.asyncio
    async def test_detected_location_outside_utterance(self):
        assistant, form, _ = make_assistant(prefill={"senderName": "Ali", "senderPhone": "03001234567"})
        await assistant.handle_utterance("start booking")
        await assistant.handle_utterance("keep")
        await assistant.handle_utterance("keep")

        text = assistant.on_location_detected("12 Mall Road", "Lahore")
        assert text == (
            "I detected pickup address 12 Mall Road in Lahore. "
            "Say yes to use it, or no to enter manually."
        )

        reply = await assistant.handle_utterance("yes")
        assert reply == "Okay. Pickup location saved. Step 1 complete. Say next to continue, or back."
        assert form.get_field("pickupCity") == "Lahore"

    def test_step_change_without_booking_is_silent(self):
        assistant, _, _ = make_assistant()
        assert assistant.on_step_changed(2) == ""


class TestCommands:
    @pytest.mark.asyncio
    async def test_help(self):
        assistant, _, _ = make_assistant()
        assert await assistant.handle_utterance("help") == HELP_TEXT

    @pytest.mark.asyncio
    async def test_stop_resets_session(self):
        resolver = PatternIntentResolver()
        resolver.clear_session = AsyncMock()
        assistant, _, _ = make_assistant(resolver=resolver)
        await assistant.handle_utterance("start booking")
        old_id = assistant.session.session_id

        assert await assistant.handle_utterance("stop") == "Okay."
        assert assistant.mode is DialogueMode.IDLE
        assert not assistant.guided.is_awaiting
        assert assistant.session.session_id != old_id
        assert [t.text for t in assistant.session.history] == ["Okay."]
        resolver.clear_session.assert_awaited_once_with(old_id)

    @pytest.mark.asyncio
    async def test_unknown_without_nlu(self):
        assistant, _, _ = make_assistant()
        assert await assistant.handle_utterance("the weather is nice") == NOT_CAUGHT

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assistant, _, _ = make_assistant()
        assert await assistant.handle_utterance("") == NOT_CAUGHT
        assert await assistant.handle_utterance("hey tracy") == "Yes? Say help to hear what I can do."

    @pytest.mark.asyncio
    async def test_submit_and_pay(self):
        assistant, form, _ = make_assistant(page="/booking")
        assert await assistant.handle_utterance("submit") == "Okay. Proceeding to payment."
        assert await assistant.handle_utterance("pay now") == "Okay. Processing payment now."
        assert form.submitted == ["booking", "payment"]

    @pytest.mark.asyncio
    async def test_login_page(self):
        assistant, form, _ = make_assistant(page=LOGIN_PAGE)
        assert await assistant.handle_utterance("email is ali@example.com") == "Got it."
        assert form.get_field("email", scope="login") == "ali@example.com"
        assert await assistant.handle_utterance("sign in") == "Signing you in."
        assert form.submitted == ["login"]


class TestSetField:
    @pytest.mark.asyncio
    async def test_filled_field_needs_explicit_change(self):
        assistant, form, _ = make_assistant(prefill={"senderName": "Sara"})
        reply = await assistant.handle_utterance("sender name is Ali")
        assert reply == "That field is already filled. Say change to update it."
        assert form.get_field("senderName") == "Sara"

        assert await assistant.handle_utterance("change sender name is Ali") == "Got it."
        assert form.get_field("senderName") == "Ali"

    @pytest.mark.asyncio
    async def test_value_is_normalized(self):
        assistant, form, _ = make_assistant()
        await assistant.handle_utterance("receiver phone is 0300 123 4567")
        assert form.get_field("receiverPhone") == "03001234567"


class TestConversationalBooking:
    @pytest.mark.asyncio
    async def test_question_per_step(self):
        assistant, form, _ = make_assistant(booking_style="conversational")

        reply = await assistant.handle_utterance("start booking")
        assert reply == "Great! Let's book your delivery. What's your name?"
        assert assistant.mode is DialogueMode.FREE_FORM

        assert await assistant.handle_utterance("my name is Ali") == "Got it! What's your phone number?"
        assert await assistant.handle_utterance("0300 1234567") == "Got it! Which city should we pick up from?"
        assert form.get_field("senderName") == "Ali"
        assert form.get_field("senderPhone") == "03001234567"
        assert assistant.session.conversation_step == "ask-pickup-city"

    @pytest.mark.asyncio
    async def test_confirm_yes_submits(self):
        resolver = PatternIntentResolver()
        resolver.clear_session = AsyncMock()
        assistant, form, _ = make_assistant(resolver=resolver, booking_style="conversational")
        await assistant.handle_utterance("start booking")
        assistant.session.conversation_step = "confirm"

        reply = await assistant.handle_utterance("yes")
        assert reply == "Perfect! Your booking is confirmed. You'll receive a confirmation SMS shortly."
        assert form.submitted == ["booking"]
        assert assistant.mode is DialogueMode.IDLE
        resolver.clear_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_confirm_no_asks_for_change(self):
        assistant, form, _ = make_assistant(booking_style="conversational")
        await assistant.handle_utterance("start booking")
        assistant.session.conversation_step = "confirm"
        reply = await assistant.handle_utterance("no")
        assert reply.startswith("Okay. Tell me what to change")
        assert form.submitted == []

    @pytest.mark.asyncio
    async def test_labeled_value_at_confirm_edits_filled_field(self):
        assistant, form, _ = make_assistant(
            booking_style="conversational",
            prefill={
                "senderName": "Ali", "receiverName": "Sara", "receiverPhone": "03111234567",
                "pickupCity": "Lahore", "dropoffCity": "Karachi", "deliverySpeed": "express",
            },
        )
        await assistant.handle_utterance("start booking")
        assistant.session.conversation_step = "confirm"
        await assistant.handle_utterance("no")

        reply = await assistant.handle_utterance("receiver phone is 03009999999")
        assert reply == (
            "Got it. From Ali to Sara, Lahore to Karachi, express delivery. "
            "Shall I confirm the booking? Say yes or no."
        )
        assert form.get_field("receiverPhone") == "03009999999"
        assert assistant.session.conversation_step == "confirm"

    @pytest.mark.asyncio
    async def test_filled_field_still_protected_before_confirm(self):
        assistant, form, _ = make_assistant(
            booking_style="conversational", prefill={"receiverPhone": "03111234567"},
        )
        await assistant.handle_utterance("start booking")
        reply = await assistant.handle_utterance("receiver phone is 03009999999")
        assert reply == "That field is already filled. Say change to update it."
        assert form.get_field("receiverPhone") == "03111234567"

    @pytest.mark.asyncio
    async def test_undecidable_reply_escalates(self):
        assistant, _, _ = make_assistant(booking_style="conversational")
        await assistant.handle_utterance("start booking")
        assistant.session.conversation_step = "ask-phone"
        reply = await assistant.handle_utterance("I don't remember it")
        assert reply == NLUResponse.fallback().response
        assert assistant.session.conversation_step == "ask-phone"


def make_classifier(response):
    classifier = MagicMock(spec=NLUClassifier)
    classifier.classify = AsyncMock(return_value=response)
    classifier.clear_session = AsyncMock()
    classifier.close = AsyncMock()
    return classifier


class TestNLUFallback:
    @pytest.mark.asyncio
    async def test_unreachable_service_uses_canned_reply(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = RemoteNLUClient("http://nlu.local", transport=httpx.MockTransport(handler))
        assistant, _, _ = make_assistant(resolver=HybridIntentResolver(client))
        reply = await assistant.handle_utterance("the weather is nice")
        await assistant.close()
        assert reply == "Sorry, could you repeat that?"

    @pytest.mark.asyncio
    async def test_classifier_starts_free_form_booking(self):
        classifier = make_classifier(NLUResponse(
            intent="booking_start",
            action=NLUAction(type="start_booking", navigateTo="/booking", nextStep="ask-name"),
            response="Great! Let's book your delivery. What's your name?",
            confidence=0.95,
        ))
        assistant, form, bus = make_assistant(resolver=HybridIntentResolver(classifier))

        reply = await assistant.handle_utterance("I'd like to ship some stuff")
        assert reply == "Great! Let's book your delivery. What's your name?"
        assert assistant.page == "/booking"
        assert assistant.mode is DialogueMode.FREE_FORM

        # Free-form replies are extracted locally before any escalation
        assert await assistant.handle_utterance("Ali") == "Got it! What's your phone number?"
        assert classifier.classify.await_count == 1
        assert form.get_field("senderName") == "Ali"

    @pytest.mark.asyncio
    async def test_extracted_data_is_committed(self):
        classifier = make_classifier(NLUResponse(
            intent="booking_collect",
            action=NLUAction(type="extract_data", extractedData={"weight": "5", "colour": "red"}),
            response="Noted, five kilos.",
        ))
        assistant, form, bus = make_assistant(resolver=HybridIntentResolver(classifier))
        assert await assistant.handle_utterance("it weighs about five") == "Noted, five kilos."
        assert form.get_field("weight") == "5"
        types = [e.type for e in bus.events(Channel.TRACE)]
        assert types == ["stt", "nlu_response"]

    @pytest.mark.asyncio
    async def test_classifier_completion_ends_session(self):
        classifier = make_classifier(NLUResponse(
            intent="booking_confirm",
            action=NLUAction(type="confirm", nextStep="complete"),
            response="Booked!",
        ))
        assistant, form, _ = make_assistant(
            resolver=HybridIntentResolver(classifier), booking_style="conversational",
        )
        await assistant.handle_utterance("start booking")
        assistant.session.conversation_step = "confirm"
        old_id = assistant.session.session_id

        assert await assistant.handle_utterance("all good, go ahead") == "Booked!"
        assert form.submitted == ["booking"]
        assert assistant.mode is DialogueMode.IDLE
        assert assistant.session.session_id != old_id
        assert [t.text for t in assistant.session.history] == ["Booked!"]
        classifier.clear_session.assert_awaited_once_with(old_id)

    @pytest.mark.asyncio
    async def test_classifier_completion_ignored_when_idle(self):
        classifier = make_classifier(NLUResponse(
            intent="booking_confirm",
            action=NLUAction(type="confirm", nextStep="complete"),
            response="Booked!",
        ))
        assistant, form, _ = make_assistant(resolver=HybridIntentResolver(classifier))
        old_id = assistant.session.session_id

        assert await assistant.handle_utterance("the weather is nice") == "Booked!"
        assert form.submitted == []
        assert assistant.mode is DialogueMode.IDLE
        assert assistant.session.session_id == old_id
        classifier.clear_session.assert_not_awaited()


class TestSessionRecord:
    @pytest.mark.asyncio
    async def test_history_and_trace(self):
        assistant, _, bus = make_assistant()
        await assistant.handle_utterance("help")
        history = assistant.session.history
        assert [(t.speaker, t.text) for t in history] == [("user", "help"), ("assistant", HELP_TEXT)]
        (trace,) = bus.events(Channel.TRACE)
        assert trace.type == "stt"
        assert trace.data["text"] == "***"
        assert trace.session_id == assistant.session.session_id

    def test_redact_pii(self):
        assert redact_pii("03001234567") == "030***67"
        assert redact_pii("Ali") == "***"
        assert redact_pii("") == "***"

    def test_history_is_trimmed(self):
        session = ConversationSession()
        for i in range(MAX_TURNS + 1):
            session.add_turn("user", f"turn {i}")
        assert len(session.history) == TRIMMED_TURNS
        assert session.history[-1].text == f"turn {MAX_TURNS}"
        assert session.recent(2)[0].text == f"turn {MAX_TURNS - 1}"
