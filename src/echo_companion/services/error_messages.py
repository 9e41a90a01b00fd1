"""
Centralized user-facing fallback messages.

Every failure that reaches the user is rendered as a conversational agent
turn using one of these texts.
"""


class ServiceErrorMessages:
    """Fallback texts for the chat backend and the voice client."""

    # Backend / network
    UPSTREAM_UNAVAILABLE = "I'm having trouble connecting. Please try again later."
    EMPTY_REPLY = "I apologize, but I couldn't process that properly."
    REQUEST_FAILED = "Failed to process request"
    MESSAGE_REQUIRED = "Message is required"

    # Speech capture / output
    CAPTURE_UNAVAILABLE = (
        "I can't access your microphone right now, so let's keep chatting by text."
    )
    SYNTHESIS_FAILED = "I'm having trouble speaking right now, so I'll reply in text."

    GREETING = "Hi, I'm {name}! I'm here to listen and chat."

    @classmethod
    def get_greeting(cls, name: str) -> str:
        return cls.GREETING.format(name=name)


UPSTREAM_UNAVAILABLE = ServiceErrorMessages.UPSTREAM_UNAVAILABLE
EMPTY_REPLY = ServiceErrorMessages.EMPTY_REPLY
MESSAGE_REQUIRED = ServiceErrorMessages.MESSAGE_REQUIRED
