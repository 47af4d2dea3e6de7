"""Voice runtime: wires speech I/O, the assistant and host signals together.

  recognition → SpeechAdapter → VoiceAssistant.handle_utterance → reply → TTS
  host form   → bus (step changed, location detected) → assistant → TTS

Host signals that arrive while an utterance is being handled are folded into
that utterance's reply by the assistant; others are spoken on their own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from voice_booking.events import Channel, EventBus
from voice_booking.models.events import LocationDetectedEvent, StepChangedEvent
from voice_booking.session import VoiceAssistant
from voice_booking.speech.adapter import SpeechAdapter, Status
from voice_booking.speech.base import RecognitionSource, SynthesisSink

log = logging.getLogger("voice_booking.runtime")


class VoiceRuntime:
    """Runs one assistant over one recognition source and synthesis sink."""

    def __init__(
        self,
        assistant: VoiceAssistant,
        bus: EventBus,
        source: RecognitionSource,
        sink: SynthesisSink,
        config=None,
        greeting: Optional[str] = "Hi, I'm Tracy. Say help to hear what I can do.",
    ) -> None:
        self.assistant = assistant
        self._bus = bus
        self._greeting = greeting
        self._done = asyncio.Event()
        self._stopped = False
        self._tasks: set[asyncio.Task] = set()
        self.adapter = SpeechAdapter.from_settings(
            source, sink, assistant.handle_utterance,
            config=config, on_status=self._on_status,
        )

        bus.subscribe(Channel.STEP_CHANGED, self._on_step_changed)
        bus.subscribe(Channel.LOCATION_DETECTED, self._on_location_detected)

    async def run(self) -> None:
        """Listen until stopped or recognition is terminally disabled."""
        log.info("Voice runtime started (session %s)", self.assistant.session.session_id)
        if self._greeting:
            await self.adapter.speak(self._greeting)
        await self.adapter.start()
        await self._done.wait()
        await self.stop()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._done.set()
        await self.adapter.stop()
        await self.adapter.wait_idle()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._bus.unsubscribe(Channel.STEP_CHANGED, self._on_step_changed)
        self._bus.unsubscribe(Channel.LOCATION_DETECTED, self._on_location_detected)
        await self.assistant.close()
        log.info("Voice runtime stopped")

    # ── Host signals ──────────────────────────────────────────

    def _on_step_changed(self, event: StepChangedEvent) -> None:
        self._speak_signal(self.assistant.on_step_changed(event.step))

    def _on_location_detected(self, event: LocationDetectedEvent) -> None:
        self._speak_signal(self.assistant.on_location_detected(event.address, event.city))

    def _speak_signal(self, text: str) -> None:
        if not text or self.assistant.busy:
            return
        task = asyncio.get_running_loop().create_task(self.adapter.speak(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_status(self, status: Status) -> None:
        log.info("Speech status: %s", status.value)
        if status is Status.ERROR:
            log.warning("Recognition disabled (%s)", self.adapter.last_error)
            self._done.set()
