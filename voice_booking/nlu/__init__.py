"""Remote natural-language-understanding fallback.

Consulted only when local pattern matching cannot place an utterance. Every
classifier returns a well-formed ``NLUResponse``; failures degrade to a canned
low-confidence answer instead of raising.
"""

from .base import NLUClassifier
from .client import RemoteNLUClient
from .service import NLUService

__all__ = ["NLUClassifier", "NLUService", "RemoteNLUClient", "build_classifier"]


def build_classifier(config=None) -> NLUClassifier:
    """Remote client when ``nlu_service_url`` is set, in-process service otherwise."""
    from voice_booking.config import settings as default_settings
    from voice_booking.nlu.llm import LLMClient
    from voice_booking.nlu.store import SessionStore

    config = config or default_settings
    if config.nlu_service_url:
        return RemoteNLUClient(config.nlu_service_url, timeout=config.nlu_timeout_seconds)
    return NLUService(
        llm=LLMClient.from_settings(config),
        store=SessionStore(
            ttl_seconds=config.session_ttl_seconds,
            max_entries=config.session_max_entries,
        ),
    )
