"""LLM prompt building utilities."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..config.yaml_loader import YAMLConfigLoader
from ..logging import get_logger
from ..types import ChatMessage, Prompt, Role, Turn

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are {name}, a compassionate AI companion. Respond with empathy,
active listening, and supportive conversational techniques. Focus on emotional support and
gentle guidance. Never give medical advice or diagnoses. If someone expresses thoughts of
self-harm, direct them to professional help and emergency services.

Keep replies short enough to be spoken aloud: two to four sentences, plain text,
no lists, no markdown, no stage directions."""

# Anchors tone without stating anything about the user.
DEFAULT_OPENING: Tuple[Tuple[Role, str], ...] = (
    (Role.USER, "Hello."),
    (
        Role.MODEL,
        "Hi, I'm {name}. I'm here to listen and chat. "
        "Feel free to share anything that's on your mind.",
    ),
)


class PromptBuilder:
    """Builds model prompts from the persona, the opening and the context window."""

    def __init__(
        self,
        persona_name: str = "Echo",
        prompts_path: Optional[Union[str, Path]] = None,
    ):
        self.persona_name = persona_name
        prompts = self.load_persona_prompts(prompts_path) if prompts_path else {}

        system_prompt = prompts.get("system_prompt") or DEFAULT_SYSTEM_PROMPT
        self.system_prompt = system_prompt.replace("{name}", persona_name).strip()
        self.opening = self._parse_opening(prompts.get("opening"))

    def _parse_opening(self, raw: Any) -> Tuple[ChatMessage, ...]:
        """Read the scripted opening from prompts.yaml, or fall back to the default."""
        pairs: List[Tuple[Role, str]] = []
        if isinstance(raw, list):
            for item in raw:
                if not isinstance(item, dict):
                    continue
                try:
                    role = Role(str(item.get("role", "")).lower())
                except ValueError:
                    logger.warning("Skipping opening line with unknown role", item=item)
                    continue
                text = str(item.get("text", "")).strip()
                if text:
                    pairs.append((role, text))

        if not pairs:
            pairs = list(DEFAULT_OPENING)

        return tuple(
            ChatMessage(role=role, content=text.replace("{name}", self.persona_name))
            for role, text in pairs
        )

    def build(self, context: Sequence[Turn], user_text: str) -> Prompt:
        """Build a prompt: persona, scripted opening, context turns, new message."""
        history = self.opening + tuple(ChatMessage.from_turn(t) for t in context)
        return Prompt(system=self.system_prompt, history=history, message=user_text)

    @staticmethod
    def load_persona_prompts(prompts_path: Union[str, Path]) -> Dict[str, Any]:
        """Load prompts.yaml; an unreadable file means defaults are used."""
        return YAMLConfigLoader.load_yaml_safe(Path(prompts_path))
