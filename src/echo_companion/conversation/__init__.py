from .session_memory import Session, SessionMemoryStore
from .text_normalizer import TextNormalizer

__all__ = [
    "Session",
    "SessionMemoryStore",
    "TextNormalizer",
]
