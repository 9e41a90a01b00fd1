"""Terminal stand-ins for the speech adapters.

The CLI uses these to drive the full voice turn cycle without audio: a typed
line plays the part of a recognized utterance and spoken replies are printed.
"""

import asyncio
import sys
from typing import Callable, Optional

import click

from ..conversation.text_normalizer import TextNormalizer
from ..core.exceptions import CaptureUnavailable, SynthesisFailure
from .adapters import (
    EndCallback,
    ErrorCallback,
    SpeechCapture,
    SpeechOutput,
    Transcript,
    TranscriptCallback,
)

LineReader = Callable[[str], str]


class ConsoleSpeechCapture(SpeechCapture):
    """Reads one line from the terminal per listening turn.

    The line is reported as a final transcript, then the capture ends. End
    of input marks the capture as closed.
    """

    def __init__(
        self,
        prompt: str = "You (voice)> ",
        reader: Optional[LineReader] = None,
        interactive: Optional[bool] = None,
    ):
        self.prompt = prompt
        self.closed = False
        self._reader = reader or input
        self._interactive = sys.stdin.isatty() if interactive is None else interactive
        self._task: Optional["asyncio.Task[None]"] = None

    def is_available(self) -> bool:
        return self._interactive and not self.closed

    def start(self, on_transcript: TranscriptCallback, on_end: EndCallback) -> None:
        if not self.is_available():
            raise CaptureUnavailable("No interactive terminal", component="console")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise CaptureUnavailable("No running event loop", component="console") from e
        self._task = loop.create_task(self._listen(on_transcript, on_end))

    async def _listen(self, on_transcript: TranscriptCallback, on_end: EndCallback) -> None:
        loop = asyncio.get_running_loop()
        try:
            line = await loop.run_in_executor(None, self._reader, self.prompt)
        except EOFError:
            self.closed = True
            line = ""
        self._task = None
        if line.strip():
            on_transcript(Transcript(text=line, is_final=True))
        on_end()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def is_capturing(self) -> bool:
        return self._task is not None and not self._task.done()


class ConsoleSpeechOutput(SpeechOutput):
    """Writes each utterance to the terminal as plain text.

    Completion is reported on the next event loop iteration, so the caller
    is already speaking when ``on_end`` fires.
    """

    def __init__(self, prefix: str = "Echo", echo: Optional[Callable[[str], None]] = None):
        self.prefix = prefix
        self._echo = echo or click.echo
        self._pending: Optional[asyncio.Handle] = None

    def speak(self, text: str, on_end: EndCallback, on_error: ErrorCallback) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise SynthesisFailure("No running event loop", component="console") from e

        self.cancel()
        self._echo(f"{self.prefix}: {TextNormalizer.strip_speech_markup(text)}")

        def finish() -> None:
            self._pending = None
            on_end()

        self._pending = loop.call_soon(finish)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def is_speaking(self) -> bool:
        return self._pending is not None
