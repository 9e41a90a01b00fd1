"""
Voice turn-taking controller.

A single-threaded state machine that decides which of speech capture, the
chat request and speech output may be active. Adapter callbacks only
deliver typed events; an event that does not belong to the current state is
dropped, which is also how late callbacks from stopped subsystems are
cancelled.

    IDLE -> LISTENING -> SUBMITTING -> AWAITING_REPLY -> SPEAKING -> IDLE
    LISTENING -> IDLE                (cancel, recognizer end, blank result)
    IDLE -> SUBMITTING               (typed message)
    AWAITING_REPLY -> IDLE           (text mode, empty reply, backend error)
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Type, Union

from ..conversation.text_normalizer import TextNormalizer
from ..core.exceptions import (
    CaptureUnavailable,
    EchoError,
    InvalidInput,
    SynthesisFailure,
    TurnRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from ..core.logging import get_logger
from ..core.types import Speaker, Turn
from ..services.error_messages import ServiceErrorMessages
from .adapters import SpeechCapture, SpeechOutput, Transcript

logger = get_logger(__name__)


class VoiceTurnState(Enum):
    """Turn-taking states; exactly one is active at a time."""

    IDLE = "idle"
    LISTENING = "listening"
    SUBMITTING = "submitting"
    AWAITING_REPLY = "awaiting_reply"
    SPEAKING = "speaking"


# Events


@dataclass(frozen=True)
class InterimTranscript:
    text: str


@dataclass(frozen=True)
class FinalTranscript:
    text: str


@dataclass(frozen=True)
class CaptureEnded:
    pass


@dataclass(frozen=True)
class ReplyReceived:
    text: str


@dataclass(frozen=True)
class ReplyFailed:
    error: Exception


@dataclass(frozen=True)
class UtteranceEnded:
    pass


@dataclass(frozen=True)
class SynthesisFailed:
    error: Exception


TurnEvent = Union[
    InterimTranscript,
    FinalTranscript,
    CaptureEnded,
    ReplyReceived,
    ReplyFailed,
    UtteranceEnded,
    SynthesisFailed,
]
StateListener = Callable[[VoiceTurnState, VoiceTurnState], None]
MessageListener = Callable[[Turn], None]


class ChatBackend(Protocol):
    """Anything that can deliver one message and return the reply."""

    async def send(self, message: str, session_id: Optional[str] = None) -> str:
        ...


class TurnController:
    """Coordinates capture, chat requests and speech output for one client."""

    def __init__(
        self,
        backend: ChatBackend,
        capture: Optional[SpeechCapture] = None,
        output: Optional[SpeechOutput] = None,
        voice_mode: bool = True,
        session_id: Optional[str] = None,
        request_timeout_s: float = 30.0,
        text_normalizer: Optional[TextNormalizer] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.backend = backend
        self.capture = capture
        self.output = output
        self.session_id = session_id or uuid.uuid4().hex
        self.request_timeout_s = request_timeout_s
        self.text_normalizer = text_normalizer or TextNormalizer()

        self.live_preview = ""
        self.last_error: Optional[Exception] = None

        self._state = VoiceTurnState.IDLE
        self._transcript: List[Turn] = []
        self._request_task: Optional["asyncio.Task[None]"] = None
        self._quiescing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._state_listeners: List[StateListener] = []
        self._message_listeners: List[MessageListener] = []
        if on_state_change is not None:
            self._state_listeners.append(on_state_change)

        self.voice_mode = voice_mode and self._capture_available()
        if voice_mode and not self.voice_mode:
            logger.warning("Speech capture unavailable, starting in text mode")

        self._handlers: Dict[
            Tuple[Type[Any], VoiceTurnState], Callable[[Any], None]
        ] = {
            (InterimTranscript, VoiceTurnState.LISTENING): self._handle_interim,
            (FinalTranscript, VoiceTurnState.LISTENING): self._handle_final,
            (CaptureEnded, VoiceTurnState.LISTENING): self._handle_capture_ended,
            (ReplyReceived, VoiceTurnState.AWAITING_REPLY): self._handle_reply,
            (ReplyFailed, VoiceTurnState.AWAITING_REPLY): self._handle_reply_failed,
            (UtteranceEnded, VoiceTurnState.SPEAKING): self._handle_utterance_ended,
            (SynthesisFailed, VoiceTurnState.SPEAKING): self._handle_synthesis_failed,
        }

    # Read-only views

    @property
    def state(self) -> VoiceTurnState:
        return self._state

    @property
    def transcript(self) -> Tuple[Turn, ...]:
        return tuple(self._transcript)

    @property
    def can_toggle_mode(self) -> bool:
        return self._state is VoiceTurnState.IDLE

    @property
    def request_in_flight(self) -> bool:
        return self._request_task is not None and not self._request_task.done()

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._idle.wait(), timeout=timeout)

    # User intents

    def start_listening(self) -> None:
        """Tap to speak: IDLE -> LISTENING.

        Raises:
            TurnRejected: if not idle or in text mode.
            CaptureUnavailable: if the recognizer is missing or fails to
                start; the controller stays idle and falls back to text mode.
        """
        if self._state is not VoiceTurnState.IDLE:
            raise TurnRejected("start listening", self._state.value)
        if not self.voice_mode:
            raise TurnRejected("start listening", "in text mode")
        if self.capture is None or not self.capture.is_available():
            error = CaptureUnavailable(component="turn_controller")
            self._degrade_to_text(error)
            raise error

        self._enter(VoiceTurnState.LISTENING)
        self.live_preview = ""
        try:
            self.capture.start(self._on_transcript, self._on_capture_end)
        except Exception as e:
            self._enter(VoiceTurnState.IDLE)
            error = (
                e
                if isinstance(e, CaptureUnavailable)
                else CaptureUnavailable(str(e), component="turn_controller")
            )
            self._degrade_to_text(error)
            raise error from e

    def send_text(self, text: str) -> None:
        """Send a typed message: IDLE -> SUBMITTING -> AWAITING_REPLY.

        Raises:
            InvalidInput: if the text is blank (nothing is sent).
            TurnRejected: if a turn is already running.
        """
        if self._state is not VoiceTurnState.IDLE:
            raise TurnRejected("send a message", self._state.value)
        if not text or not text.strip():
            raise InvalidInput(component="turn_controller")
        self._submit(text.strip())

    def cancel(self) -> None:
        """Stop listening or speaking and return to IDLE.

        Cancelling while a request is outstanding is rejected; the reply
        is already being recorded by the backend.
        """
        if self._state in (VoiceTurnState.LISTENING, VoiceTurnState.SPEAKING):
            logger.info("Turn cancelled", state=self._state.value)
            self._enter(VoiceTurnState.IDLE)
            self.live_preview = ""
        elif self._state is not VoiceTurnState.IDLE:
            raise TurnRejected("cancel", self._state.value)

    def set_voice_mode(self, enabled: bool) -> None:
        """Switch between voice and text mode.

        Allowed from IDLE only, except that turning voice off while
        SPEAKING stops the audio at once and then switches.
        """
        if enabled == self.voice_mode:
            return
        if self._state is VoiceTurnState.SPEAKING and not enabled:
            self.cancel()
        elif self._state is not VoiceTurnState.IDLE:
            raise TurnRejected("toggle voice mode", self._state.value)

        if enabled and not self._capture_available():
            error = CaptureUnavailable(component="turn_controller")
            self._degrade_to_text(error)
            raise error

        self.voice_mode = enabled
        logger.info("Voice mode changed", voice_mode=enabled)

    # Event delivery

    def dispatch(self, event: TurnEvent) -> None:
        """Deliver an event; events outside their state are dropped."""
        if self._quiescing:
            logger.debug(
                "Dropped event while quiescing", event_type=type(event).__name__
            )
            return
        handler = self._handlers.get((type(event), self._state))
        if handler is None:
            logger.debug(
                "Dropped event",
                event_type=type(event).__name__,
                state=self._state.value,
            )
            return
        handler(event)

    def _on_transcript(self, transcript: Transcript) -> None:
        if transcript.is_final:
            self.dispatch(FinalTranscript(transcript.text))
        else:
            self.dispatch(InterimTranscript(transcript.text))

    def _on_capture_end(self) -> None:
        self.dispatch(CaptureEnded())

    def _on_utterance_end(self) -> None:
        self.dispatch(UtteranceEnded())

    def _on_synthesis_error(self, error: Exception) -> None:
        self.dispatch(SynthesisFailed(error))

    # Handlers

    def _handle_interim(self, event: InterimTranscript) -> None:
        self.live_preview = event.text

    def _handle_final(self, event: FinalTranscript) -> None:
        text = event.text.strip()
        if not text:
            logger.debug("Discarded blank transcript")
            self._enter(VoiceTurnState.IDLE)
            self.live_preview = ""
            return
        self._submit(text)

    def _handle_capture_ended(self, event: CaptureEnded) -> None:
        self._enter(VoiceTurnState.IDLE)
        self.live_preview = ""

    def _handle_reply(self, event: ReplyReceived) -> None:
        text = (event.text or "").strip()
        if not text:
            self._append(Turn(ServiceErrorMessages.EMPTY_REPLY, Speaker.AGENT))
            self._enter(VoiceTurnState.IDLE)
            return

        self._append(Turn(text, Speaker.AGENT))
        if self.voice_mode and self.output is not None:
            self._speak(text)
        else:
            self._enter(VoiceTurnState.IDLE)

    def _handle_reply_failed(self, event: ReplyFailed) -> None:
        self.last_error = event.error
        logger.warning("Reply failed", error=str(event.error))
        self._append(Turn(ServiceErrorMessages.UPSTREAM_UNAVAILABLE, Speaker.AGENT))
        self._enter(VoiceTurnState.IDLE)

    def _handle_utterance_ended(self, event: UtteranceEnded) -> None:
        self._enter(VoiceTurnState.IDLE)

    def _handle_synthesis_failed(self, event: SynthesisFailed) -> None:
        self._synthesis_failed(event.error)

    # Transitions

    def _enter(self, new_state: VoiceTurnState, keep: Tuple[str, ...] = ()) -> None:
        """Quiesce every subsystem not in ``keep``, then switch state."""
        self._quiesce(keep)
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        if new_state is VoiceTurnState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

        logger.log_state_transition(old_state.value, new_state.value)
        for listener in list(self._state_listeners):
            listener(old_state, new_state)

    def _quiesce(self, keep: Tuple[str, ...] = ()) -> None:
        self._quiescing = True
        try:
            if (
                "capture" not in keep
                and self.capture is not None
                and self.capture.is_capturing()
            ):
                self.capture.stop()
            if (
                "output" not in keep
                and self.output is not None
                and self.output.is_speaking()
            ):
                self.output.cancel()
            if "request" not in keep and self.request_in_flight:
                assert self._request_task is not None
                self._request_task.cancel()
                self._request_task = None
        finally:
            self._quiescing = False

    def _submit(self, text: str) -> None:
        if self.request_in_flight:
            raise TurnRejected("send a message", "a request is outstanding")

        self._enter(VoiceTurnState.SUBMITTING)
        self.live_preview = ""
        self._append(Turn(text, Speaker.USER))

        self._request_task = asyncio.get_running_loop().create_task(
            self._round_trip(text)
        )
        self._enter(VoiceTurnState.AWAITING_REPLY, keep=("request",))

    async def _round_trip(self, text: str) -> None:
        try:
            reply = await asyncio.wait_for(
                self.backend.send(text, self.session_id),
                timeout=self.request_timeout_s,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._request_done()
            self.dispatch(
                ReplyFailed(UpstreamTimeout(self.request_timeout_s, component="turn_controller"))
            )
        except EchoError as e:
            self._request_done()
            self.dispatch(ReplyFailed(e))
        except Exception as e:
            logger.error(
                "Chat request failed", error=str(e), error_type=type(e).__name__
            )
            self._request_done()
            self.dispatch(
                ReplyFailed(
                    UpstreamUnavailable(
                        "Chat request failed", reason=str(e), component="turn_controller"
                    )
                )
            )
        else:
            self._request_done()
            self.dispatch(ReplyReceived(reply))

    def _request_done(self) -> None:
        # The finishing task must not cancel itself while quiescing.
        if self._request_task is asyncio.current_task():
            self._request_task = None

    def _speak(self, text: str) -> None:
        assert self.output is not None
        self._enter(VoiceTurnState.SPEAKING)
        markup = self.text_normalizer.prepare_for_speech(text)
        try:
            self.output.speak(markup, self._on_utterance_end, self._on_synthesis_error)
        except Exception as e:
            if self._state is VoiceTurnState.SPEAKING:
                self._synthesis_failed(e)

    def _synthesis_failed(self, error: Exception) -> None:
        if not isinstance(error, SynthesisFailure):
            error = SynthesisFailure(str(error), component="turn_controller")
        self.last_error = error
        logger.warning("Speech output failed, showing text only", error=str(error))
        self._enter(VoiceTurnState.IDLE)
        self._append(Turn(ServiceErrorMessages.SYNTHESIS_FAILED, Speaker.AGENT))

    # Helpers

    def _capture_available(self) -> bool:
        return self.capture is not None and self.capture.is_available()

    def _degrade_to_text(self, error: Exception) -> None:
        self.last_error = error
        self.voice_mode = False
        logger.warning("Falling back to text mode", error=str(error))
        self._append(Turn(ServiceErrorMessages.CAPTURE_UNAVAILABLE, Speaker.AGENT))

    def _append(self, turn: Turn) -> None:
        self._transcript.append(turn)
        for listener in list(self._message_listeners):
            listener(turn)
