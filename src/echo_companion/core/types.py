"""
Shared data types for Echo Companion.

Turns are what the memory store keeps; chat messages are what the model
backend receives.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class Speaker(Enum):
    """Who produced a turn."""

    USER = "user"
    AGENT = "agent"


@dataclass(frozen=True)
class Turn:
    """A single immutable utterance in a conversation."""

    text: str
    speaker: Speaker
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "text": self.text,
            "speaker": self.speaker.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        """Create from dictionary."""
        return cls(
            text=data["text"],
            speaker=Speaker(data["speaker"]),
            created_at=data["created_at"],
        )


class Role(Enum):
    """Message roles understood by the model backends."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class ChatMessage:
    """One message of the prompt history sent to a model backend."""

    role: Role
    content: str

    @classmethod
    def from_turn(cls, turn: Turn) -> "ChatMessage":
        role = Role.USER if turn.speaker is Speaker.USER else Role.MODEL
        return cls(role=role, content=turn.text)


@dataclass(frozen=True)
class Prompt:
    """A fully built model request."""

    system: str
    history: Tuple[ChatMessage, ...]
    message: str
