"""Tests for the in-memory form store and the event bus it listens on."""

import asyncio

import pytest

from voice_booking.events import Channel, EventBus
from voice_booking.form_store import InMemoryFormStore
from voice_booking.models.dialogue import DetectedLocation
from voice_booking.models.events import (
    LocationDetectedEvent,
    NavigateEvent,
    SetFieldEvent,
    StepChangedEvent,
)


class TestEventBus:
    def test_delivers_in_publish_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(Channel.NAVIGATE, lambda e: seen.append(("a", e.path)))
        bus.subscribe(Channel.NAVIGATE, lambda e: seen.append(("b", e.path)))
        bus.navigate("/booking")
        bus.navigate("/tracking")
        assert seen == [("a", "/booking"), ("b", "/booking"), ("a", "/tracking"), ("b", "/tracking")]

    def test_wrong_payload_type_rejected(self):
        bus = EventBus()
        with pytest.raises(TypeError):
            bus.publish(Channel.SET_FIELD, NavigateEvent(path="/"))

    def test_failing_subscriber_does_not_stop_delivery(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(Channel.SET_FIELD, broken)
        bus.subscribe(Channel.SET_FIELD, seen.append)
        bus.set_field("booking", "senderName", "Ali")
        assert seen == [SetFieldEvent(scope="booking", field="senderName", value="Ali")]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe(Channel.NAVIGATE, seen.append)
        bus.unsubscribe(Channel.NAVIGATE, seen.append)
        bus.unsubscribe(Channel.NAVIGATE, seen.append)  # second time is a no-op
        bus.navigate("/")
        assert seen == []
        assert bus.subscriber_count(Channel.NAVIGATE) == 0

    def test_event_log_is_bounded(self):
        bus = EventBus(log_size=3)
        for i in range(5):
            bus.navigate(f"/p{i}")
        assert [e.path for _, e in bus.event_log] == ["/p2", "/p3", "/p4"]

    def test_trace_payload(self):
        bus = EventBus()
        bus.trace("stt", "s1", "idle", {"text": "hi"})
        (event,) = bus.events(Channel.TRACE)
        assert event.type == "stt"
        assert event.session_id == "s1"
        assert event.data == {"text": "hi"}
        assert event.timestamp > 0


class TestFormFields:
    def test_dotted_paths(self):
        form = InMemoryFormStore(EventBus())
        form.set_field("dimensions.height", "12")
        assert form.get_field("dimensions.height") == "12"
        assert form.snapshot()["dimensions"]["height"] == "12"

    def test_defaults(self):
        form = InMemoryFormStore(EventBus())
        assert form.get_field("senderName") == ""
        assert form.get_field("deliverySpeed") == "standard"
        assert form.get_field("dimensions") == ""
        assert form.get_field("nope.nothing") == ""

    def test_unknown_booking_field_ignored(self):
        form = InMemoryFormStore(EventBus())
        form.set_field("favouriteColour", "blue")
        assert "favouriteColour" not in form.snapshot()

    def test_set_field_event_latest_write_wins(self):
        bus = EventBus()
        form = InMemoryFormStore(bus)
        form.set_field("receiverName", "typed by user")
        bus.set_field("booking", "receiverName", "Bilal")
        assert form.get_field("receiverName") == "Bilal"

    def test_page_scopes(self):
        bus = EventBus()
        form = InMemoryFormStore(bus)
        bus.set_field("login", "email", "ali@example.com")
        assert form.get_field("email", scope="login") == "ali@example.com"
        assert form.get_field("email") == ""


class TestFormActions:
    def test_next_and_back_publish_step(self):
        bus = EventBus()
        form = InMemoryFormStore(bus, step_count=4)
        bus.action("booking", "next")
        bus.action("booking", "next")
        bus.action("booking", "back")
        assert form.step == 2
        assert [e.step for e in bus.events(Channel.STEP_CHANGED)] == [2, 3, 2]

    def test_steps_are_clamped(self):
        bus = EventBus()
        form = InMemoryFormStore(bus, step_count=2)
        bus.action("booking", "back")
        bus.action("booking", "next")
        bus.action("booking", "next")
        assert form.step == 2
        assert bus.events(Channel.STEP_CHANGED) == [StepChangedEvent(step=2)]

    def test_submit_recorded(self):
        bus = EventBus()
        form = InMemoryFormStore(bus)
        bus.action("booking", "submit")
        bus.action("payment", "pay")
        assert form.submitted == ["booking", "payment"]

    def test_detect_without_locator_is_noop(self):
        bus = EventBus()
        InMemoryFormStore(bus)
        bus.action("booking", "detect-location")
        assert bus.events(Channel.LOCATION_DETECTED) == []

    @pytest.mark.asyncio
    async def test_detect_location_publishes_result(self):
        async def locator():
            return DetectedLocation(address="12 Mall Road", city="Lahore")

        bus = EventBus()
        InMemoryFormStore(bus, locator=locator)
        bus.action("booking", "detect-location")
        await asyncio.sleep(0.01)
        assert bus.events(Channel.LOCATION_DETECTED) == [
            LocationDetectedEvent(address="12 Mall Road", city="Lahore"),
        ]

    @pytest.mark.asyncio
    async def test_failing_locator_is_logged(self):
        async def locator():
            raise OSError("no gps")

        bus = EventBus()
        InMemoryFormStore(bus, locator=locator)
        bus.action("booking", "detect-location")
        await asyncio.sleep(0.01)
        assert bus.events(Channel.LOCATION_DETECTED) == []
