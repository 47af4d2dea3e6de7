"""Typed publish/subscribe channel between the assistant and its host.

The assistant never touches the form or the router directly: it publishes
set-field, action and navigate events, and the host publishes step-changed
and location-detected signals back. Delivery is synchronous and
fire-and-forget: every subscriber of a channel receives each event once, in
publish order. A failing subscriber is logged and skipped, so an exception
never propagates back into the publisher.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from voice_booking.models.events import (
    ActionEvent,
    LocationDetectedEvent,
    NavigateEvent,
    SetFieldEvent,
    StepChangedEvent,
    TraceEvent,
)

log = logging.getLogger("voice_booking.events")


class Channel(str, Enum):
    SET_FIELD = "set_field"
    ACTION = "action"
    NAVIGATE = "navigate"
    STEP_CHANGED = "booking.step"
    LOCATION_DETECTED = "booking.detected_location"
    TRACE = "trace"


PAYLOAD_TYPES: dict[Channel, type[BaseModel]] = {
    Channel.SET_FIELD: SetFieldEvent,
    Channel.ACTION: ActionEvent,
    Channel.NAVIGATE: NavigateEvent,
    Channel.STEP_CHANGED: StepChangedEvent,
    Channel.LOCATION_DETECTED: LocationDetectedEvent,
    Channel.TRACE: TraceEvent,
}

Handler = Callable[[Any], None]


class EventBus:
    """In-process event emitter with one ordered subscriber list per channel."""

    def __init__(self, log_size: int = 200) -> None:
        self._subscribers: dict[Channel, list[Handler]] = {c: [] for c in Channel}
        self._event_log: deque[tuple[Channel, BaseModel]] = deque(maxlen=log_size)

    def subscribe(self, channel: Channel, handler: Handler) -> None:
        self._subscribers[channel].append(handler)
        log.debug("Subscriber added to %s (total: %d)",
                  channel.value, len(self._subscribers[channel]))

    def unsubscribe(self, channel: Channel, handler: Handler) -> None:
        try:
            self._subscribers[channel].remove(handler)
        except ValueError:
            pass

    def publish(self, channel: Channel, payload: BaseModel) -> None:
        """Deliver ``payload`` to every subscriber of ``channel``."""
        expected = PAYLOAD_TYPES[channel]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{channel.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        self._event_log.append((channel, payload))

        for handler in list(self._subscribers[channel]):
            try:
                handler(payload)
            except Exception:
                log.exception("Subscriber for %s failed", channel.value)

    # Convenience emitters used by the dialogue code

    def set_field(self, scope: str, field: str, value: str) -> None:
        self.publish(Channel.SET_FIELD, SetFieldEvent(scope=scope, field=field, value=value))

    def action(self, scope: str, action: str) -> None:
        self.publish(Channel.ACTION, ActionEvent(scope=scope, action=action))

    def navigate(self, path: str) -> None:
        self.publish(Channel.NAVIGATE, NavigateEvent(path=path))

    def trace(self, event_type: str, session_id: str, state: str, data: dict) -> None:
        self.publish(
            Channel.TRACE,
            TraceEvent(type=event_type, session_id=session_id, state=state, data=data),
        )

    @property
    def event_log(self) -> list[tuple[Channel, BaseModel]]:
        """Recent event history (bounded)."""
        return list(self._event_log)

    def events(self, channel: Channel) -> list[BaseModel]:
        return [payload for ch, payload in self._event_log if ch is channel]

    def subscriber_count(self, channel: Channel) -> int:
        return len(self._subscribers[channel])
