"""NLUClassifier ABC: the single seam to any language-understanding provider."""

from __future__ import annotations

from abc import ABC, abstractmethod

from voice_booking.models.nlu import NLURequest, NLUResponse


class NLUClassifier(ABC):
    """Classifies an utterance in its conversational context.

    Implementations must never raise for provider, transport or parse
    failures: they return ``NLUResponse.fallback()`` (or a better local guess)
    instead, so callers can use the result without a try/except.
    """

    @abstractmethod
    async def classify(self, request: NLURequest) -> NLUResponse:
        """Return a structured intent/action/response envelope."""

    async def clear_session(self, session_id: str) -> None:
        """Forget any server-side history kept for ``session_id``."""

    async def close(self) -> None:
        """Release transport resources. Safe to call multiple times."""
