"""Speech capture and output interfaces.

These interfaces let the turn controller drive any recognizer or synthesizer
(browser bridge, desktop engine, console stand-in, test double) without
knowing how audio is produced or consumed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Transcript:
    """A recognizer result."""

    text: str
    is_final: bool


TranscriptCallback = Callable[[Transcript], None]
EndCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class SpeechCapture(ABC):
    """Continuous or single-shot speech recognizer."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether a device and permission are available."""
        pass

    @abstractmethod
    def start(self, on_transcript: TranscriptCallback, on_end: EndCallback) -> None:
        """Start recognition.

        Interim and final results are delivered through ``on_transcript``;
        ``on_end`` fires when the recognizer stops for any reason.

        Raises:
            CaptureUnavailable: if recognition cannot start.
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop recognition. Safe to call when not started."""
        pass

    @abstractmethod
    def is_capturing(self) -> bool:
        pass


class SpeechOutput(ABC):
    """Speech synthesizer."""

    @abstractmethod
    def speak(self, text: str, on_end: EndCallback, on_error: ErrorCallback) -> None:
        """Start speaking ``text``.

        Exactly one of ``on_end`` or ``on_error`` fires per utterance unless
        it is cancelled.

        Raises:
            SynthesisFailure: if synthesis cannot start.
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop audio output immediately. Safe to call when idle."""
        pass

    @abstractmethod
    def is_speaking(self) -> bool:
        pass
