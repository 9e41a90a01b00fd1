"""Text normalization for model replies and speech output."""

import re
from typing import FrozenSet, Optional
from xml.sax.saxutils import escape, unescape

# Affect-bearing words that get spoken emphasis.
EMPHASIS_LEXICON: FrozenSet[str] = frozenset(
    {
        "alone",
        "brave",
        "care",
        "feel",
        "feeling",
        "glad",
        "happy",
        "hope",
        "important",
        "proud",
        "sad",
        "safe",
        "sorry",
        "together",
        "understand",
        "worried",
    }
)

# Pause lengths in milliseconds, keyed by punctuation class.
PAUSE_MS = {
    "ellipsis": 600,
    "sentence": 450,
    "dash": 300,
    "clause": 200,
}

_PAUSE_OPEN = "\x00"
_EMPH_OPEN = "\x01"
_EMPH_CLOSE = "\x02"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
# Only punctuation followed by more content gets a pause.
_PAUSE_PATTERN = re.compile(r"(\.{3}|…|[.!?]+|[,;:]|\s[—–]|\s--?)(?=\s+\S)")
_PLACEHOLDER = re.compile(_PAUSE_OPEN + r"(\d+)" + _PAUSE_OPEN)
_ROLE_LABEL = re.compile(r"^(user|assistant|model|agent|echo)\s*:\s*", re.IGNORECASE)


def _pause_class(punct: str) -> str:
    if punct in ("...", "…"):
        return "ellipsis"
    if punct[0] in ".!?":
        return "sentence"
    if punct[0] in ",;:":
        return "clause"
    return "dash"


class TextNormalizer:
    """Reply cleanup for storage and markup for speech synthesis."""

    def __init__(
        self,
        emphasis_lexicon: Optional[FrozenSet[str]] = None,
        persona_name: str = "Echo",
    ):
        self.emphasis_lexicon = emphasis_lexicon or EMPHASIS_LEXICON
        self.persona_name = persona_name
        words = "|".join(sorted(re.escape(w) for w in self.emphasis_lexicon))
        self._emphasis_pattern = re.compile(rf"\b({words})\b", re.IGNORECASE)

    def clean_reply(self, reply: str) -> str:
        """Strip role labels, markdown and excess whitespace from a model reply."""
        if not reply:
            return ""

        cleaned = reply.strip()
        cleaned = _ROLE_LABEL.sub("", cleaned)
        if self.persona_name:
            cleaned = re.sub(
                rf"^{re.escape(self.persona_name)}\s*:\s*",
                "",
                cleaned,
                flags=re.IGNORECASE,
            )

        # Markdown
        cleaned = re.sub(r"\*\*(.*?)\*\*", r"\1", cleaned)  # Bold
        cleaned = re.sub(r"\*(.*?)\*", r"\1", cleaned)  # Italic
        cleaned = re.sub(r"`(.*?)`", r"\1", cleaned)  # Code
        cleaned = re.sub(r"^\s*#+\s*", "", cleaned, flags=re.MULTILINE)  # Headers
        cleaned = re.sub(r"^\s*[-*+]\s+", "", cleaned, flags=re.MULTILINE)  # Lists

        cleaned = re.sub(r"\s+", " ", cleaned)
        return cleaned.strip()

    def prepare_for_speech(self, text: str) -> str:
        """Annotate text with SSML pauses and emphasis.

        Pure function of its input: pauses follow punctuation that is followed
        by more content, and lexicon words are wrapped in ``<emphasis>``.
        Returns an empty string for blank input.
        """
        if not text or not text.strip():
            return ""

        marked = _CONTROL_CHARS.sub("", text.strip())

        def add_pause(match: "re.Match[str]") -> str:
            punct = match.group(1)
            ms = PAUSE_MS[_pause_class(punct.strip())]
            return f"{punct}{_PAUSE_OPEN}{ms}{_PAUSE_OPEN}"

        marked = _PAUSE_PATTERN.sub(add_pause, marked)
        marked = self._emphasis_pattern.sub(
            lambda m: f"{_EMPH_OPEN}{m.group(1)}{_EMPH_CLOSE}", marked
        )

        ssml = escape(marked)
        ssml = _PLACEHOLDER.sub(r'<break time="\1ms"/>', ssml)
        ssml = ssml.replace(_EMPH_OPEN, '<emphasis level="moderate">')
        ssml = ssml.replace(_EMPH_CLOSE, "</emphasis>")
        return f"<speak>{ssml}</speak>"

    @staticmethod
    def strip_speech_markup(ssml: str) -> str:
        """Recover plain text from ``prepare_for_speech`` output."""
        plain = re.sub(r"<[^>]+>", "", ssml or "")
        return unescape(plain)
