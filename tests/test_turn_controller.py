"""
Tests for the voice turn-taking controller.
"""

import asyncio
from typing import Callable, List, Tuple

import pytest
from conftest import FakeChatBackend, FakeSpeechCapture, FakeSpeechOutput

from echo_companion.client.turn_controller import (
    CaptureEnded,
    ReplyReceived,
    SynthesisFailed,
    TurnController,
    UtteranceEnded,
    VoiceTurnState,
)
from echo_companion.core.exceptions import (
    CaptureUnavailable,
    InvalidInput,
    SynthesisFailure,
    TurnRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from echo_companion.core.logging import configure_logging
from echo_companion.core.types import Speaker
from echo_companion.services.error_messages import ServiceErrorMessages

State = VoiceTurnState


async def until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)


def build(
    backend: FakeChatBackend = None,
    capture: FakeSpeechCapture = None,
    output: FakeSpeechOutput = None,
    **kwargs,
) -> Tuple[TurnController, FakeChatBackend, FakeSpeechCapture, FakeSpeechOutput]:
    backend = backend or FakeChatBackend()
    capture = capture or FakeSpeechCapture()
    output = output or FakeSpeechOutput()
    kwargs.setdefault("session_id", "s1")
    controller = TurnController(backend, capture=capture, output=output, **kwargs)
    return controller, backend, capture, output


async def speak_reply(controller: TurnController, capture: FakeSpeechCapture) -> None:
    controller.start_listening()
    capture.emit("I had a rough day")
    await until(lambda: controller.state is State.SPEAKING)


class TestVoiceCycle:
    """Test the full voice turn and its transitions."""

    @pytest.mark.asyncio
    async def test_full_cycle(self) -> None:
        states: List[VoiceTurnState] = []
        controller, backend, capture, output = build(
            backend=FakeChatBackend(replies=["I'm sorry, that sounds hard. I'm here."]),
            on_state_change=lambda old, new: states.append(new),
        )

        controller.start_listening()
        assert controller.state is State.LISTENING
        assert capture.is_capturing()

        capture.emit("I had", is_final=False)
        assert controller.live_preview == "I had"

        capture.emit("I had a rough day")
        assert controller.state is State.AWAITING_REPLY
        assert controller.live_preview == ""
        assert not capture.is_capturing()

        await until(lambda: controller.state is State.SPEAKING)
        assert backend.calls == [{"message": "I had a rough day", "session_id": "s1"}]
        assert output.spoken[0].startswith("<speak>")
        assert '<emphasis level="moderate">sorry</emphasis>' in output.spoken[0]

        output.finish()
        assert controller.state is State.IDLE
        assert states == [
            State.LISTENING,
            State.SUBMITTING,
            State.AWAITING_REPLY,
            State.SPEAKING,
            State.IDLE,
        ]
        assert [(t.speaker, t.text) for t in controller.transcript] == [
            (Speaker.USER, "I had a rough day"),
            (Speaker.AGENT, "I'm sorry, that sounds hard. I'm here."),
        ]

    @pytest.mark.asyncio
    async def test_blank_final_transcript_returns_to_idle(self) -> None:
        controller, backend, capture, _ = build()
        controller.start_listening()
        capture.emit("   ")

        assert controller.state is State.IDLE
        assert backend.calls == []
        assert controller.transcript == ()
        assert not capture.is_capturing()

    @pytest.mark.asyncio
    async def test_capture_end_without_result(self) -> None:
        controller, backend, capture, _ = build()
        controller.start_listening()
        capture.end()

        assert controller.state is State.IDLE
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_manual_cancel_while_listening(self) -> None:
        controller, _, capture, _ = build()
        controller.start_listening()
        controller.cancel()

        assert controller.state is State.IDLE
        assert capture.stop_calls == 1

    @pytest.mark.asyncio
    async def test_late_capture_end_is_ignored(self) -> None:
        gate = asyncio.Event()
        controller, _, capture, _ = build(backend=FakeChatBackend(gate=gate))
        controller.start_listening()
        capture.emit("hello")
        assert controller.state is State.AWAITING_REPLY

        assert capture.on_end is not None
        capture.on_end()
        assert controller.state is State.AWAITING_REPLY

        gate.set()
        await until(lambda: controller.state is State.SPEAKING)

    @pytest.mark.asyncio
    async def test_events_outside_their_state_are_dropped(self) -> None:
        controller, _, _, _ = build()
        controller.dispatch(ReplyReceived("late reply"))
        controller.dispatch(UtteranceEnded())

        assert controller.state is State.IDLE
        assert controller.transcript == ()

    @pytest.mark.asyncio
    async def test_dropped_events_with_debug_logging(self) -> None:
        configure_logging("DEBUG")
        controller, backend, capture, _ = build()

        controller.dispatch(CaptureEnded())
        controller.dispatch(SynthesisFailed(RuntimeError("stale")))
        assert controller.state is State.IDLE

        # stop() reports the end synchronously while the controller quiesces
        controller.start_listening()
        capture.emit("hello")
        assert capture.stop_calls == 1
        assert controller.state is State.AWAITING_REPLY

        await until(lambda: controller.state is State.SPEAKING)
        assert backend.calls[0]["message"] == "hello"

    @pytest.mark.asyncio
    async def test_start_listening_when_busy(self) -> None:
        controller, _, _, _ = build()
        controller.start_listening()
        with pytest.raises(TurnRejected):
            controller.start_listening()


class TestSpeechOutput:
    """Test speaking, cancellation and synthesis failures."""

    @pytest.mark.asyncio
    async def test_cancel_while_speaking_stops_audio(self) -> None:
        controller, _, capture, output = build()
        await speak_reply(controller, capture)

        controller.cancel()
        assert controller.state is State.IDLE
        assert output.cancel_calls == 1
        assert not output.is_speaking()

        # A completion that arrives after the cancel changes nothing
        output.finish()
        assert controller.state is State.IDLE

    @pytest.mark.asyncio
    async def test_synthesis_error_event_falls_back_to_text(self) -> None:
        controller, _, capture, output = build()
        await speak_reply(controller, capture)

        output.fail(RuntimeError("audio device lost"))

        assert controller.state is State.IDLE
        assert isinstance(controller.last_error, SynthesisFailure)
        assert [t.text for t in controller.transcript[-2:]] == [
            "I hear you.",
            ServiceErrorMessages.SYNTHESIS_FAILED,
        ]

        # A late completion from the failed utterance is ignored
        output.finish()
        assert len(controller.transcript) == 3

    @pytest.mark.asyncio
    async def test_synthesis_failure_on_speak(self) -> None:
        controller, _, capture, _ = build(output=FakeSpeechOutput(fail_on_speak=True))
        controller.start_listening()
        capture.emit("hello")

        await until(lambda: len(controller.transcript) == 3)
        assert controller.state is State.IDLE
        assert isinstance(controller.last_error, SynthesisFailure)
        assert [t.speaker for t in controller.transcript] == [
            Speaker.USER,
            Speaker.AGENT,
            Speaker.AGENT,
        ]
        assert controller.transcript[-1].text == ServiceErrorMessages.SYNTHESIS_FAILED

    @pytest.mark.asyncio
    async def test_text_mode_reply_is_not_spoken(self) -> None:
        controller, backend, _, output = build(voice_mode=False)
        controller.send_text("  hello there ")
        await controller.wait_until_idle(timeout=1.0)

        assert backend.calls[0]["message"] == "hello there"
        assert output.spoken == []
        assert [t.speaker for t in controller.transcript] == [Speaker.USER, Speaker.AGENT]


class TestModeToggle:
    """Test switching between voice and text mode."""

    @pytest.mark.asyncio
    async def test_toggle_rejected_while_awaiting_reply(self) -> None:
        gate = asyncio.Event()
        controller, _, capture, _ = build(backend=FakeChatBackend(gate=gate))
        controller.start_listening()
        capture.emit("hello")

        assert controller.can_toggle_mode is False
        with pytest.raises(TurnRejected):
            controller.set_voice_mode(False)
        assert controller.voice_mode is True
        gate.set()
        await until(lambda: controller.state is State.SPEAKING)

    @pytest.mark.asyncio
    async def test_toggle_rejected_while_listening(self) -> None:
        controller, _, _, _ = build()
        controller.start_listening()
        with pytest.raises(TurnRejected):
            controller.set_voice_mode(False)

    @pytest.mark.asyncio
    async def test_disabling_voice_while_speaking_stops_audio(self) -> None:
        controller, _, capture, output = build()
        await speak_reply(controller, capture)

        controller.set_voice_mode(False)

        assert controller.state is State.IDLE
        assert controller.voice_mode is False
        assert output.cancel_calls == 1

    @pytest.mark.asyncio
    async def test_toggle_from_idle(self) -> None:
        controller, _, _, _ = build()
        controller.set_voice_mode(False)
        assert controller.voice_mode is False
        controller.set_voice_mode(True)
        assert controller.voice_mode is True


class TestCaptureUnavailable:
    """Test degraded mode when speech capture is missing."""

    @pytest.mark.asyncio
    async def test_starts_in_text_mode_without_capture(self) -> None:
        controller = TurnController(FakeChatBackend(), capture=None, voice_mode=True)
        assert controller.voice_mode is False

        with pytest.raises(CaptureUnavailable):
            controller.set_voice_mode(True)
        assert controller.transcript[-1].text == ServiceErrorMessages.CAPTURE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_capture_start_failure_degrades_to_text(self) -> None:
        controller, _, _, _ = build(capture=FakeSpeechCapture(fail_on_start=True))

        with pytest.raises(CaptureUnavailable):
            controller.start_listening()

        assert controller.state is State.IDLE
        assert controller.voice_mode is False
        assert controller.transcript[-1].speaker is Speaker.AGENT
        assert controller.transcript[-1].text == ServiceErrorMessages.CAPTURE_UNAVAILABLE

        with pytest.raises(TurnRejected):
            controller.start_listening()

    @pytest.mark.asyncio
    async def test_text_still_works_after_degrading(self) -> None:
        controller, backend, _, _ = build(capture=FakeSpeechCapture(available=False))
        controller.send_text("hi")
        await controller.wait_until_idle(timeout=1.0)
        assert len(backend.calls) == 1


class TestRequests:
    """Test request submission and failures."""

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self) -> None:
        controller, backend, _, _ = build(voice_mode=False)
        with pytest.raises(InvalidInput):
            controller.send_text("   ")
        assert backend.calls == []
        assert controller.transcript == ()
        assert controller.state is State.IDLE

    @pytest.mark.asyncio
    async def test_duplicate_send_rejected(self) -> None:
        gate = asyncio.Event()
        controller, backend, _, _ = build(
            backend=FakeChatBackend(gate=gate), voice_mode=False
        )
        controller.send_text("first")
        with pytest.raises(TurnRejected):
            controller.send_text("second")

        gate.set()
        await controller.wait_until_idle(timeout=1.0)
        assert [c["message"] for c in backend.calls] == ["first"]

    @pytest.mark.asyncio
    async def test_cancel_rejected_while_awaiting_reply(self) -> None:
        gate = asyncio.Event()
        controller, _, _, _ = build(backend=FakeChatBackend(gate=gate), voice_mode=False)
        controller.send_text("hello")
        with pytest.raises(TurnRejected):
            controller.cancel()
        gate.set()
        await controller.wait_until_idle(timeout=1.0)

    @pytest.mark.asyncio
    async def test_backend_error_becomes_agent_message(self) -> None:
        backend = FakeChatBackend(replies=[UpstreamUnavailable("down")])
        controller, _, capture, output = build(backend=backend)
        controller.start_listening()
        capture.emit("hello")

        await controller.wait_until_idle(timeout=1.0)
        assert controller.transcript[-1].speaker is Speaker.AGENT
        assert controller.transcript[-1].text == ServiceErrorMessages.UPSTREAM_UNAVAILABLE
        assert isinstance(controller.last_error, UpstreamUnavailable)
        assert output.spoken == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self) -> None:
        backend = FakeChatBackend(replies=[ConnectionResetError("reset")])
        controller, _, _, _ = build(backend=backend, voice_mode=False)
        controller.send_text("hello")

        await controller.wait_until_idle(timeout=1.0)
        assert isinstance(controller.last_error, UpstreamUnavailable)
        assert controller.transcript[-1].text == ServiceErrorMessages.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_request_timeout(self) -> None:
        controller, _, _, _ = build(
            backend=FakeChatBackend(gate=asyncio.Event()),
            voice_mode=False,
            request_timeout_s=0.05,
        )
        controller.send_text("hello")

        await controller.wait_until_idle(timeout=1.0)
        assert isinstance(controller.last_error, UpstreamTimeout)
        assert controller.transcript[-1].text == ServiceErrorMessages.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_empty_reply_uses_fallback(self) -> None:
        controller, _, capture, output = build(backend=FakeChatBackend(replies=["  "]))
        controller.start_listening()
        capture.emit("hello")

        await controller.wait_until_idle(timeout=1.0)
        assert controller.transcript[-1].text == ServiceErrorMessages.EMPTY_REPLY
        assert output.spoken == []

    @pytest.mark.asyncio
    async def test_session_id_is_stable_and_generated(self) -> None:
        controller = TurnController(FakeChatBackend())
        assert len(controller.session_id) == 32
        first = controller.session_id
        controller.send_text("hi")
        await controller.wait_until_idle(timeout=1.0)
        assert controller.session_id == first

    @pytest.mark.asyncio
    async def test_message_listener(self) -> None:
        seen: List[str] = []
        controller, _, _, _ = build(voice_mode=False)
        controller.add_message_listener(lambda turn: seen.append(turn.text))
        controller.send_text("hi")
        await controller.wait_until_idle(timeout=1.0)
        assert seen == ["hi", "I hear you."]
