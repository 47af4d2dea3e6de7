"""Speech input/output: engine seams, the resilient adapter, console backends."""

from .adapter import TERMINAL_ERRORS, TRANSIENT_ERRORS, SpeechAdapter, Status
from .base import (
    RecognitionSource,
    RecognitionStartError,
    SpeechRecognitionError,
    SpeechSynthesisError,
    SynthesisSink,
    TranscriptSegment,
)
from .console import ConsoleRecognitionSource, ConsoleSynthesisSink

__all__ = [
    "ConsoleRecognitionSource",
    "ConsoleSynthesisSink",
    "RecognitionSource",
    "RecognitionStartError",
    "SpeechAdapter",
    "SpeechRecognitionError",
    "SpeechSynthesisError",
    "Status",
    "SynthesisSink",
    "TERMINAL_ERRORS",
    "TRANSIENT_ERRORS",
    "TranscriptSegment",
]
