"""
Pytest configuration and fixtures for Echo Companion.
Only the model backend and the speech devices are replaced with fakes.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Union

import pytest

from echo_companion.client.adapters import (
    EndCallback,
    ErrorCallback,
    SpeechCapture,
    SpeechOutput,
    Transcript,
    TranscriptCallback,
)
from echo_companion.conversation.session_memory import SessionMemoryStore
from echo_companion.core.config import Config, Environment
from echo_companion.core.exceptions import SynthesisFailure
from echo_companion.core.llm.providers import ModelBackend
from echo_companion.core.logging import clear_request_context
from echo_companion.core.types import ChatMessage


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModelBackend(ModelBackend):
    """Records every call and answers from a script."""

    name = "fake"

    def __init__(
        self,
        replies: Optional[List[Union[str, Exception]]] = None,
        default_reply: str = "I'm here with you.",
        delay: float = 0.0,
    ):
        self.replies = list(replies or [])
        self.default_reply = default_reply
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def send_message(
        self,
        history: Sequence[ChatMessage],
        new_text: str,
        system: Optional[str] = None,
    ) -> str:
        self.calls.append(
            {"history": list(history), "new_text": new_text, "system": system}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else self.default_reply
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self) -> None:
        self.closed = True


class FakeSpeechCapture(SpeechCapture):
    """Recognizer double; tests push results through ``emit`` and ``end``."""

    def __init__(self, available: bool = True, fail_on_start: bool = False):
        self.available = available
        self.fail_on_start = fail_on_start
        self.capturing = False
        self.start_calls = 0
        self.stop_calls = 0
        self.on_transcript: Optional[TranscriptCallback] = None
        self.on_end: Optional[EndCallback] = None

    def is_available(self) -> bool:
        return self.available

    def start(self, on_transcript: TranscriptCallback, on_end: EndCallback) -> None:
        self.start_calls += 1
        if self.fail_on_start:
            raise RuntimeError("microphone permission denied")
        self.on_transcript = on_transcript
        self.on_end = on_end
        self.capturing = True

    def stop(self) -> None:
        self.stop_calls += 1
        was_capturing = self.capturing
        self.capturing = False
        # Real recognizers report the end synchronously on stop
        if was_capturing and self.on_end is not None:
            self.on_end()

    def is_capturing(self) -> bool:
        return self.capturing

    def emit(self, text: str, is_final: bool = True) -> None:
        assert self.on_transcript is not None
        self.on_transcript(Transcript(text=text, is_final=is_final))

    def end(self) -> None:
        self.capturing = False
        assert self.on_end is not None
        self.on_end()


class FakeSpeechOutput(SpeechOutput):
    """Synthesizer double; tests finish utterances with ``finish`` or ``fail``."""

    def __init__(self, fail_on_speak: bool = False):
        self.fail_on_speak = fail_on_speak
        self.spoken: List[str] = []
        self.speaking = False
        self.cancel_calls = 0
        self._on_end: Optional[EndCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    def speak(self, text: str, on_end: EndCallback, on_error: ErrorCallback) -> None:
        if self.fail_on_speak:
            raise SynthesisFailure("no voices installed")
        self.spoken.append(text)
        self.speaking = True
        self._on_end = on_end
        self._on_error = on_error

    def cancel(self) -> None:
        self.cancel_calls += 1
        self.speaking = False

    def is_speaking(self) -> bool:
        return self.speaking

    def finish(self) -> None:
        self.speaking = False
        assert self._on_end is not None
        self._on_end()

    def fail(self, error: Exception) -> None:
        self.speaking = False
        assert self._on_error is not None
        self._on_error(error)


class FakeChatBackend:
    """Client-side backend double for the turn controller."""

    def __init__(
        self,
        replies: Optional[List[Union[str, Exception]]] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.replies = list(replies or [])
        self.gate = gate
        self.calls: List[Dict[str, Optional[str]]] = []

    async def send(self, message: str, session_id: Optional[str] = None) -> str:
        self.calls.append({"message": message, "session_id": session_id})
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else "I hear you."
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(fake_clock: FakeClock) -> SessionMemoryStore:
    return SessionMemoryStore(ttl_seconds=3600, context_turns=6, clock=fake_clock)


@pytest.fixture
def fake_backend() -> FakeModelBackend:
    return FakeModelBackend()


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Test configuration."""
    config = Config(environment=Environment.TESTING)
    config.model.api_key = "test-key"
    return config


@pytest.fixture
def make_capture() -> Callable[..., FakeSpeechCapture]:
    return FakeSpeechCapture


@pytest.fixture
def make_output() -> Callable[..., FakeSpeechOutput]:
    return FakeSpeechOutput


@pytest.fixture(autouse=True)
def reset_request_context() -> Generator[None, None, None]:
    yield
    clear_request_context()
