"""Console speech backends: typed lines in, printed lines out.

Used by ``python -m voice_booking chat`` and handy for manual testing. Each
recognition session reads one line: a non-empty line is a final result, an
empty line is ``no-speech`` and end of input is a terminal error.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, TextIO

from voice_booking.speech.base import (
    RecognitionSource,
    RecognitionStartError,
    SynthesisSink,
    TranscriptSegment,
)

log = logging.getLogger("voice_booking.speech.console")

END_OF_INPUT = "end-of-input"


class ConsoleRecognitionSource(RecognitionSource):
    """Reads utterances from a text stream (stdin by default)."""

    def __init__(self, stream: Optional[TextIO] = None, prompt: str = "you> ") -> None:
        super().__init__()
        self._stream = stream or sys.stdin
        self._prompt = prompt
        self._task: Optional[asyncio.Task] = None
        # A blocking read survives an abort and is picked up by the next session
        self._read: Optional[asyncio.Future] = None

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            raise RecognitionStartError("console recognition already running")
        self._task = asyncio.get_running_loop().create_task(self._listen())
        self._emit_start()

    def abort(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._task = None
            self._emit_end()

    async def release(self) -> None:
        self.abort()

    async def _listen(self) -> None:
        loop = asyncio.get_running_loop()
        if self._read is None:
            self._read = loop.run_in_executor(None, self._readline)
        try:
            line = await asyncio.shield(self._read)
        except asyncio.CancelledError:
            return
        self._read = None
        self._task = None

        if line == "":
            self._emit_error(END_OF_INPUT)
        elif line.strip():
            self._emit_result(TranscriptSegment(text=line.strip(), is_final=True, confidence=1.0))
        else:
            self._emit_error("no-speech")
        self._emit_end()

    def _readline(self) -> str:
        if self._prompt:
            print(self._prompt, end="", flush=True)
        return self._stream.readline()


class ConsoleSynthesisSink(SynthesisSink):
    """Prints what would be spoken."""

    def __init__(self, stream: Optional[TextIO] = None, prefix: str = "tracy> ") -> None:
        self._stream = stream or sys.stdout
        self._prefix = prefix

    async def speak(self, text: str) -> None:
        self._stream.write(f"{self._prefix}{text}\n")
        self._stream.flush()

    def cancel(self) -> None:
        pass
