"""Voice-first chat client: turn-taking controller and its adapters."""

from .adapters import SpeechCapture, SpeechOutput, Transcript
from .backend_client import ChatBackendClient
from .turn_controller import TurnController, VoiceTurnState

__all__ = [
    "ChatBackendClient",
    "SpeechCapture",
    "SpeechOutput",
    "Transcript",
    "TurnController",
    "VoiceTurnState",
]
