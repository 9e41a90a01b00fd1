"""Top-level services package.

Service classes that sit between the web layer and the conversation core.
"""

from .error_messages import ServiceErrorMessages
from .reply_orchestrator import ReplyOrchestrator, ReplyResult

__all__ = [
    "ReplyOrchestrator",
    "ReplyResult",
    "ServiceErrorMessages",
]
