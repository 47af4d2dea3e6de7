"""Recognition source and synthesis sink ABCs.

Speech engines differ wildly (browser recognition, cloud streaming STT,
local TTS voices). The adapter only needs two small seams:

  RecognitionSource   emits start / result / end / error callbacks
  SynthesisSink       speaks text, can be cancelled

Error codes follow the browser speech-recognition vocabulary
(``no-speech``, ``aborted``, ``network``, ``audio-capture``, ``not-allowed``,
``service-not-allowed``); sources for other engines map onto it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class TranscriptSegment:
    """One recognition hypothesis."""

    text: str
    is_final: bool = False
    confidence: float = 0.0


class SpeechRecognitionError(Exception):
    """Recognition failed; ``code`` is the engine's error code."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class RecognitionStartError(SpeechRecognitionError):
    """The engine refused to start (typically: already started)."""

    def __init__(self, message: str = "") -> None:
        super().__init__("start-failed", message)


class SpeechSynthesisError(Exception):
    """The synthesis sink could not speak an utterance."""


class RecognitionSource(ABC):
    """A speech recognizer that delivers results through bound callbacks.

    A session runs from ``start()`` until the engine ends it (silence, an
    error, ``abort()``); the ``on_end`` callback fires once per session.
    """

    def __init__(self) -> None:
        self._on_start: Optional[Callable[[], None]] = None
        self._on_result: Optional[Callable[[TranscriptSegment], None]] = None
        self._on_end: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None

    def bind(
        self,
        on_start: Callable[[], None],
        on_result: Callable[[TranscriptSegment], None],
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        self._on_start = on_start
        self._on_result = on_result
        self._on_end = on_end
        self._on_error = on_error

    @abstractmethod
    async def start(self) -> None:
        """Begin a recognition session.

        Raises ``RecognitionStartError`` if a session is already running and
        ``SpeechRecognitionError`` if the device cannot be acquired.
        """

    @abstractmethod
    def abort(self) -> None:
        """End the current session immediately, discarding pending audio."""

    def stop(self) -> None:
        """End the current session; engines without a graceful stop abort."""
        self.abort()

    async def release(self) -> None:
        """Release the input device. Safe to call multiple times."""

    # Helpers for implementations

    def _emit_start(self) -> None:
        if self._on_start:
            self._on_start()

    def _emit_result(self, segment: TranscriptSegment) -> None:
        if self._on_result:
            self._on_result(segment)

    def _emit_end(self) -> None:
        if self._on_end:
            self._on_end()

    def _emit_error(self, code: str) -> None:
        if self._on_error:
            self._on_error(code)


class SynthesisSink(ABC):
    """Text-to-speech output."""

    @abstractmethod
    async def speak(self, text: str) -> None:
        """Speak ``text`` and return when done.

        Raises ``SpeechSynthesisError`` on failure.
        """

    @abstractmethod
    def cancel(self) -> None:
        """Stop speaking and drop anything queued."""
