"""Speech I/O adapter: keeps a best-effort listening session alive.

Recognition engines end sessions on their own (silence, network blips) and
under-finalize results. The adapter hides that:

  * unexpected session ends schedule a restart with bounded exponential
    backoff, unless listening was stopped or synthesis is speaking
  * interim hypotheses go into a single-slot pending buffer; a settle timer
    forwards the latest one if no final result arrives in time
  * recognition is aborted before speaking and resumed afterwards, so the
    assistant never hears itself
  * at most one utterance is processed at a time; utterances arriving while
    one is in flight are dropped, not queued

Everything runs on one asyncio event loop; timers use ``loop.call_later``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from voice_booking.speech.base import (
    RecognitionSource,
    RecognitionStartError,
    SpeechRecognitionError,
    SpeechSynthesisError,
    SynthesisSink,
    TranscriptSegment,
)

log = logging.getLogger("voice_booking.speech")

TRANSIENT_ERRORS = frozenset({"no-speech", "aborted", "network", "audio-capture"})
TERMINAL_ERRORS = frozenset({"not-allowed", "service-not-allowed"})

UtteranceHandler = Callable[[str], Awaitable[Optional[str]]]


class Status(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    ERROR = "error"


class SpeechAdapter:
    """Glue between a recognition source, a synthesis sink and the assistant.

    ``on_utterance`` receives each settled utterance and returns the reply to
    speak (or ``None``).
    """

    def __init__(
        self,
        source: RecognitionSource,
        sink: SynthesisSink,
        on_utterance: UtteranceHandler,
        *,
        initial_backoff: float = 0.25,
        max_backoff: float = 2.5,
        settle_seconds: float = 1.2,
        on_status: Optional[Callable[[Status], None]] = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._on_utterance = on_utterance
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff
        self._settle_seconds = settle_seconds
        self._on_status = on_status

        self._active = False        # caller wants to be listening
        self._recognizing = False
        self._speaking = False
        self._processing = False
        self._backoff = initial_backoff
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._settle_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[str] = None
        self._speak_generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._status = Status.IDLE
        self.last_error: Optional[str] = None

        source.bind(
            on_start=self._handle_start,
            on_result=self._handle_result,
            on_end=self._handle_end,
            on_error=self._handle_error,
        )

    # ── Public API ────────────────────────────────────────────

    @classmethod
    def from_settings(cls, source, sink, on_utterance, config=None, **kwargs) -> "SpeechAdapter":
        from voice_booking.config import settings as default_settings

        config = config or default_settings
        return cls(
            source,
            sink,
            on_utterance,
            initial_backoff=config.restart_initial_backoff,
            max_backoff=config.restart_max_backoff,
            settle_seconds=config.interim_settle_seconds,
            **kwargs,
        )

    @property
    def status(self) -> Status:
        return self._status

    @property
    def listening(self) -> bool:
        """Listening is wanted and not terminally disabled."""
        return self._active

    @property
    def recognizing(self) -> bool:
        return self._recognizing

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def backoff(self) -> float:
        """Delay the next automatic restart will use."""
        return min(self._backoff, self._max_backoff)

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    async def start(self) -> None:
        """Begin listening. Resets the restart backoff."""
        self._active = True
        self.last_error = None
        self._backoff = self._initial_backoff
        self._cancel_restart()
        if not self._speaking:
            self._set_status(Status.LISTENING)
        await self._start_recognition()

    async def speak(self, text: str) -> None:
        """Speak ``text`` with recognition paused; resume listening afterwards."""
        if not text or not text.strip():
            return
        self._speak_generation += 1
        generation = self._speak_generation

        if self._speaking:
            self._sink.cancel()
        self._cancel_restart()
        self._cancel_settle()
        self._pending = None
        self._speaking = True
        if self._recognizing:
            self._recognizing = False
            self._source.abort()
        self._set_status(Status.SPEAKING)

        try:
            await self._sink.speak(text)
        except SpeechSynthesisError as exc:
            log.warning("Speech synthesis failed: %s", exc)
        except Exception:
            log.exception("Synthesis sink failed")
        finally:
            if generation == self._speak_generation:
                self._speaking = False
                if self._active:
                    self._set_status(Status.LISTENING)
                elif self._status is not Status.ERROR:
                    self._set_status(Status.IDLE)

        if generation == self._speak_generation and self._active:
            await self._start_recognition()

    async def stop(self) -> None:
        """Stop listening and speaking, cancel timers, release the device.

        Idempotent.
        """
        was_running = self._active or self._recognizing or self._speaking
        self._active = False
        self._cancel_restart()
        self._cancel_settle()
        self._pending = None
        self._speak_generation += 1
        if self._speaking:
            self._speaking = False
            self._sink.cancel()
        if self._recognizing:
            self._recognizing = False
            self._source.abort()
        if was_running:
            await self._source.release()
            log.info("Speech adapter stopped")
        if self._status is not Status.ERROR:
            self._set_status(Status.IDLE)

    async def wait_idle(self) -> None:
        """Wait for in-flight utterance processing to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Recognition callbacks ─────────────────────────────────

    def _handle_start(self) -> None:
        self._recognizing = True

    def _handle_result(self, segment: TranscriptSegment) -> None:
        text = segment.text.strip()
        if not text or not self._active or self._speaking:
            return
        # Real speech: the engine is healthy again
        self._backoff = self._initial_backoff

        if segment.is_final:
            self._cancel_settle()
            self._pending = None
            self._dispatch(text)
            return

        self._pending = text
        self._cancel_settle()
        self._settle_handle = asyncio.get_running_loop().call_later(
            self._settle_seconds, self._settle,
        )

    def _handle_end(self) -> None:
        self._recognizing = False
        if self._active and not self._speaking:
            self._schedule_restart()

    def _handle_error(self, code: str) -> None:
        self.last_error = code
        if code in TRANSIENT_ERRORS:
            log.debug("Transient recognition error: %s", code)
            if self._active and not self._speaking:
                self._schedule_restart()
            return

        # Permission denials and unknown codes end the session
        log.error("Recognition disabled after error: %s", code)
        self._active = False
        self._cancel_restart()
        self._cancel_settle()
        self._pending = None
        if self._recognizing:
            self._recognizing = False
            self._source.abort()
        self._set_status(Status.ERROR)

    # ── Internal ──────────────────────────────────────────────

    async def _start_recognition(self) -> None:
        if not self._active or self._speaking or self._recognizing:
            return
        try:
            await self._source.start()
        except RecognitionStartError as exc:
            log.debug("Recognition start refused: %s", exc)
            self._schedule_restart()
            return
        except SpeechRecognitionError as exc:
            self._handle_error(exc.code)
            return
        self._recognizing = True

    def _schedule_restart(self) -> None:
        if self._restart_handle is not None:
            return
        delay = self.backoff
        self._backoff = min(self._backoff * 2, self._max_backoff)
        log.debug("Recognition restart in %.2fs", delay)
        self._restart_handle = asyncio.get_running_loop().call_later(delay, self._fire_restart)

    def _fire_restart(self) -> None:
        self._restart_handle = None
        self._spawn(self._start_recognition())

    def _settle(self) -> None:
        self._settle_handle = None
        text, self._pending = self._pending, None
        if text:
            self._dispatch(text)

    def _dispatch(self, text: str) -> None:
        if self._processing:
            log.info("Utterance dropped while processing: %d chars", len(text))
            return
        self._processing = True
        self._spawn(self._process(text))

    async def _process(self, text: str) -> None:
        try:
            try:
                reply = await self._on_utterance(text)
            except Exception:
                log.exception("Utterance handler failed")
                reply = "Sorry, something went wrong. Please say that again."
            if reply and self._active:
                await self.speak(reply)
        finally:
            self._processing = False
            if self._active and not self._speaking and not self._recognizing:
                self._schedule_restart()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _cancel_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    def _set_status(self, status: Status) -> None:
        if status is self._status:
            return
        self._status = status
        if self._on_status:
            self._on_status(status)
