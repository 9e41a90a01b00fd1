"""Reply generation service: memory in, model call, memory out."""

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from ..conversation.session_memory import SessionMemoryStore
from ..conversation.text_normalizer import TextNormalizer
from ..core.config.base import CONTEXT_TURNS, DEFAULT_SESSION_ID
from ..core.exceptions import InvalidInput, UpstreamTimeout, UpstreamUnavailable
from ..core.llm.prompt_builder import PromptBuilder
from ..core.llm.providers import ModelBackend
from ..core.logging import ProcessingTimer, get_logger
from ..core.types import ChatMessage, Speaker, Turn
from .error_messages import ServiceErrorMessages

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReplyResult:
    """Outcome of one successful exchange."""

    session_id: str
    reply: str
    context_turns: int


class ReplyOrchestrator:
    """Builds a bounded-context prompt, calls the model and records the exchange.

    Requests for one session run one at a time under the store's session
    lock; requests for different sessions run concurrently.
    """

    def __init__(
        self,
        store: SessionMemoryStore,
        backend: ModelBackend,
        prompt_builder: Optional[PromptBuilder] = None,
        text_normalizer: Optional[TextNormalizer] = None,
        context_turns: int = CONTEXT_TURNS,
        timeout_s: float = 30.0,
        default_session_id: str = DEFAULT_SESSION_ID,
    ):
        self.store = store
        self.backend = backend
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.text_normalizer = text_normalizer or TextNormalizer(
            persona_name=self.prompt_builder.persona_name
        )
        self.context_turns = context_turns
        self.timeout_s = timeout_s
        self.default_session_id = default_session_id

    async def reply(self, session_id: Optional[str], user_text: Optional[str]) -> ReplyResult:
        """Generate the agent reply for ``user_text`` in ``session_id``.

        Raises:
            InvalidInput: if the message is missing or blank (no side effects).
            UpstreamUnavailable: if the model fails, times out or replies
                with nothing. Memory is left unchanged.
        """
        if user_text is None or not user_text.strip():
            raise InvalidInput(ServiceErrorMessages.MESSAGE_REQUIRED, component="reply")

        session_id = session_id or self.default_session_id
        text = user_text.strip()

        async with self.store.session_lock(session_id):
            self.store.get_or_create(session_id)
            context = self.store.context_window(session_id, self.context_turns)
            prompt = self.prompt_builder.build(context, text)

            with ProcessingTimer(
                logger, "model_call", self.backend.name, context_turns=len(context)
            ):
                raw_reply = await self._call_model(prompt.history, text, prompt.system)

            reply = self.text_normalizer.clean_reply(raw_reply)
            if not reply:
                raise UpstreamUnavailable(
                    "Model returned an empty reply", component="reply"
                )

            now = self.store.now()
            self.store.append_turn(session_id, Turn(text, Speaker.USER, now))
            self.store.append_turn(session_id, Turn(reply, Speaker.AGENT, now))

        logger.info(
            "Reply generated",
            session_id=session_id,
            context_turns=len(context),
            reply_chars=len(reply),
        )
        return ReplyResult(session_id=session_id, reply=reply, context_turns=len(context))

    async def _call_model(
        self, history: Sequence[ChatMessage], text: str, system: str
    ) -> str:
        try:
            return await asyncio.wait_for(
                self.backend.send_message(history, text, system=system),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Model call timed out", timeout_s=self.timeout_s)
            raise UpstreamTimeout(self.timeout_s, component="reply") from e
        except UpstreamUnavailable as e:
            logger.warning("Model backend unavailable", error=str(e))
            raise
        except Exception as e:
            logger.error(
                "Model backend failed", error=str(e), error_type=type(e).__name__
            )
            raise UpstreamUnavailable(
                "Model backend failed", reason=str(e), component="reply"
            ) from e

    def speech_text(self, reply: str) -> str:
        """Annotate a reply for a speech sink; stored history is not affected."""
        return self.text_normalizer.prepare_for_speech(reply)
