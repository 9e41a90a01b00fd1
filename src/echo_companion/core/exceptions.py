"""
Exception hierarchy for Echo Companion.

Provides structured error handling with specific error types for the
conversation memory, the reply pipeline and the voice turn-taking client.
"""

from typing import Any, Dict, Optional


class EchoError(Exception):
    """Base exception for all Echo Companion errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        component: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.component = component

    def __str__(self) -> str:
        """String representation of the error."""
        base_msg = f"[{self.component or 'Echo'}] {self.message}"
        if self.error_code:
            base_msg = f"[{self.error_code}] {base_msg}"
        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "component": self.component,
            "details": self.details,
        }


class ConfigurationError(EchoError):
    """Exception raised when configuration is invalid or missing."""

    pass


class InvalidInput(EchoError):
    """Exception raised when a message is empty or missing."""

    def __init__(
        self, message: str = "Message is required", **kwargs: Any
    ) -> None:
        kwargs.setdefault("error_code", "INVALID_INPUT")
        super().__init__(message, **kwargs)


class UpstreamUnavailable(EchoError):
    """Exception raised when the model backend or the network fails."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", None) or {}
        if reason:
            details["reason"] = reason
        kwargs.setdefault("error_code", "UPSTREAM_UNAVAILABLE")
        super().__init__(message, details=details, **kwargs)


class UpstreamTimeout(UpstreamUnavailable):
    """Exception raised when an upstream call exceeds its time budget."""

    def __init__(self, timeout_seconds: float, **kwargs: Any) -> None:
        super().__init__(
            f"Upstream call timed out after {timeout_seconds} seconds",
            error_code="UPSTREAM_TIMEOUT",
            details={"timeout_seconds": timeout_seconds},
            **kwargs,
        )


class CaptureUnavailable(EchoError):
    """Exception raised when no microphone or permission is available."""

    def __init__(
        self, message: str = "Speech capture is unavailable", **kwargs: Any
    ) -> None:
        kwargs.setdefault("error_code", "CAPTURE_UNAVAILABLE")
        super().__init__(message, **kwargs)


class SynthesisFailure(EchoError):
    """Exception raised when speech output fails."""

    def __init__(self, message: str = "Speech synthesis failed", **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "SYNTHESIS_FAILURE")
        super().__init__(message, **kwargs)


class TurnRejected(EchoError):
    """Exception raised when an intent is not allowed in the current turn state."""

    def __init__(self, action: str, state: str, **kwargs: Any) -> None:
        super().__init__(
            f"Cannot {action} while {state}",
            error_code="TURN_REJECTED",
            details={"action": action, "state": state},
            **kwargs,
        )
