"""Intent resolution strategies.

One interface, three strategies selected by ``INTENT_RESOLVER``:

  pattern   local rules only; escalation answers with the canned default
  llm       every utterance outside a booking reply goes to the NLU classifier
  hybrid    local rules first; the classifier only sees ``Unknown`` utterances
            that arrive while no booking reply is expected (default)

Control words (stop, help) and booking replies are always resolved locally,
whatever the strategy. Free-form booking replies reach the classifier through
``escalate`` once the step extractor has declined them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from voice_booking.models.intent import (
    Help,
    Intent,
    Navigate,
    StartBooking,
    Stop,
    Unknown,
)
from voice_booking.models.nlu import NLURequest, NLUResponse
from voice_booking.models.session import Turn
from voice_booking.nlp.intent_parser import ROUTES, parse
from voice_booking.nlu.base import NLUClassifier

log = logging.getLogger("voice_booking.resolvers")


@dataclass
class ResolveContext:
    """What a resolver may know about the conversation around an utterance."""

    page: str = "/"
    awaiting: bool = False  # a guided field or free-form booking step is in flight
    step: str = "idle"
    session_id: str = "default"
    history: list[Turn] = field(default_factory=list)
    form: dict[str, Any] = field(default_factory=dict)

    def request(self, text: str) -> NLURequest:
        return NLURequest(
            userText=text,
            currentStep=self.step,
            conversationHistory=self.history,
            formDataSnapshot=self.form,
            currentPage=self.page,
            sessionId=self.session_id,
        )


@dataclass
class Resolution:
    intent: Intent
    nlu: Optional[NLUResponse] = None  # set when the classifier was consulted


def intent_from_nlu(nlu: NLUResponse) -> Intent:
    """Map a classifier envelope onto the local intent vocabulary.

    Anything that carries data or a free-form step stays ``Unknown`` so the
    caller applies the envelope itself.
    """
    action = nlu.action
    if action.type == "navigate" and action.navigateTo in ROUTES:
        return Navigate(path=action.navigateTo, explicit=True)
    if action.type == "start_booking" and not nlu.extracted and not action.nextStep:
        return StartBooking()
    if action.type == "reset":
        return Stop()
    return Unknown()


class IntentResolver(ABC):
    """Turns an utterance into an ``Intent`` (plus the NLU envelope, if any)."""

    name = ""

    @abstractmethod
    async def resolve(self, text: str, context: ResolveContext) -> Resolution:
        """Classify ``text``; never raises."""

    @abstractmethod
    async def escalate(self, text: str, context: ResolveContext) -> NLUResponse:
        """Ask for a structured answer when local extraction has declined."""

    async def clear_session(self, session_id: str) -> None:
        """Forget remote history for ``session_id`` (no-op offline)."""

    async def close(self) -> None:
        """Release classifier resources."""


class PatternIntentResolver(IntentResolver):
    """Offline: local rules only."""

    name = "pattern"

    async def resolve(self, text: str, context: ResolveContext) -> Resolution:
        return Resolution(parse(text, context.page))

    async def escalate(self, text: str, context: ResolveContext) -> NLUResponse:
        return NLUResponse.fallback()


class _ClassifierResolver(IntentResolver):
    """Shared plumbing for the strategies that consult an ``NLUClassifier``."""

    def __init__(self, classifier: NLUClassifier) -> None:
        self._classifier = classifier

    async def escalate(self, text: str, context: ResolveContext) -> NLUResponse:
        log.info("Escalating to NLU (page=%s, step=%s)", context.page, context.step)
        return await self._classifier.classify(context.request(text))

    async def _classify(self, text: str, context: ResolveContext) -> Resolution:
        nlu = await self.escalate(text, context)
        return Resolution(intent_from_nlu(nlu), nlu)

    async def clear_session(self, session_id: str) -> None:
        await self._classifier.clear_session(session_id)

    async def close(self) -> None:
        await self._classifier.close()


class LLMIntentResolver(_ClassifierResolver):
    """Remote-first: the classifier sees every utterance outside a guided reply."""

    name = "llm"

    async def resolve(self, text: str, context: ResolveContext) -> Resolution:
        local = parse(text, context.page)
        if isinstance(local, (Stop, Help)) or context.awaiting:
            return Resolution(local)
        return await self._classify(text, context)


class HybridIntentResolver(_ClassifierResolver):
    """Local rules first; the classifier only for unplaced utterances."""

    name = "hybrid"

    async def resolve(self, text: str, context: ResolveContext) -> Resolution:
        local = parse(text, context.page)
        if not isinstance(local, Unknown) or context.awaiting:
            return Resolution(local)
        return await self._classify(text, context)


def build_resolver(config=None, classifier: Optional[NLUClassifier] = None) -> IntentResolver:
    """Select the strategy named by ``config.intent_resolver``."""
    from voice_booking.config import settings as default_settings

    config = config or default_settings
    kind = config.intent_resolver
    if kind == "pattern":
        resolver: IntentResolver = PatternIntentResolver()
    else:
        if classifier is None:
            from voice_booking.nlu import build_classifier
            classifier = build_classifier(config)
        if kind == "llm":
            resolver = LLMIntentResolver(classifier)
        else:
            resolver = HybridIntentResolver(classifier)
    log.info("Intent resolver: %s", resolver.name)
    return resolver
