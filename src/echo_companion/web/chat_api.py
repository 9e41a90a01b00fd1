"""
Chat API for Echo Companion.

Exposes the reply endpoint used by the voice client plus health and session
inspection endpoints.
"""

import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..conversation.session_memory import SessionMemoryStore
from ..conversation.text_normalizer import TextNormalizer
from ..core.config import Config
from ..core.exceptions import InvalidInput
from ..core.llm.prompt_builder import PromptBuilder
from ..core.llm.providers import ModelBackend, create_backend
from ..core.logging import get_logger, set_request_context
from ..services.error_messages import ServiceErrorMessages
from ..services.reply_orchestrator import ReplyOrchestrator
from .error_handling_middleware import install_error_handling
from .logging_middleware import LoggingMiddleware

logger = get_logger(__name__)

chat_router = APIRouter(tags=["chat"])


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    reply: str


async def parse_chat_request(request: Request) -> ChatRequest:
    """Read the body by hand so every malformed shape maps to one 400."""
    raw = await request.body()
    if not raw:
        raise InvalidInput(ServiceErrorMessages.MESSAGE_REQUIRED, component="chat_api")
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("body must be a JSON object")
        chat_request = ChatRequest.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise InvalidInput(
            ServiceErrorMessages.MESSAGE_REQUIRED,
            details={"reason": str(e)},
            component="chat_api",
        ) from e

    if chat_request.message is None or not chat_request.message.strip():
        raise InvalidInput(ServiceErrorMessages.MESSAGE_REQUIRED, component="chat_api")
    return chat_request


def get_orchestrator(request: Request) -> ReplyOrchestrator:
    orchestrator: ReplyOrchestrator = request.app.state.orchestrator
    return orchestrator


@chat_router.post("/chat", response_model=ChatResponse)
@chat_router.post("/api/chat", response_model=ChatResponse, include_in_schema=False)
async def chat(request: Request) -> ChatResponse:
    """Generate the agent reply for one user message."""
    chat_request = await parse_chat_request(request)
    orchestrator = get_orchestrator(request)

    session_id = chat_request.session_id or orchestrator.default_session_id
    set_request_context(session_id=session_id)

    result = await orchestrator.reply(session_id, chat_request.message)
    return ChatResponse(reply=result.reply)


@chat_router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Basic health check endpoint."""
    store: SessionMemoryStore = request.app.state.store
    return {
        "status": "ok",
        "sessions": len(store),
        "uptime_seconds": time.time() - request.app.state.started_at,
    }


@chat_router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> Any:
    """Return the stored memory for one session without touching it."""
    store: SessionMemoryStore = request.app.state.store
    if session_id not in store:
        return JSONResponse(status_code=404, content={"error": "Session not found"})

    summary = store.summary(session_id)
    summary["turns"] = [turn.to_dict() for turn in store.history(session_id)]
    return summary


@chat_router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request) -> Any:
    store: SessionMemoryStore = request.app.state.store
    if not store.clear(session_id):
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return {"session_id": session_id, "cleared": True}


def create_app(
    config: Optional[Config] = None,
    backend: Optional[ModelBackend] = None,
    store: Optional[SessionMemoryStore] = None,
) -> FastAPI:
    """Build the API with its memory store and model backend.

    Args:
        config: Resolved configuration; defaults are used when omitted.
        backend: Model backend; built from ``config.model`` when omitted.
        store: Session memory; a fresh in-process store when omitted.
    """
    config = config or Config()
    if backend is None:
        backend = create_backend(config.model)
    if store is None:
        store = SessionMemoryStore(
            ttl_seconds=config.memory.session_ttl_seconds,
            context_turns=config.memory.context_turns,
        )
    prompt_builder = PromptBuilder(
        persona_name=config.persona.name, prompts_path=config.persona.prompts_path
    )
    orchestrator = ReplyOrchestrator(
        store=store,
        backend=backend,
        prompt_builder=prompt_builder,
        text_normalizer=TextNormalizer(persona_name=config.persona.name),
        context_turns=config.memory.context_turns,
        timeout_s=config.model.timeout_s,
        default_session_id=config.api.default_session_id,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Chat API started",
            model_backend=backend.name,
            context_turns=config.memory.context_turns,
            session_ttl_seconds=config.memory.session_ttl_seconds,
        )
        try:
            yield
        finally:
            await backend.aclose()
            logger.info("Chat API stopped", sessions=len(store))

    app = FastAPI(title="Echo Companion API", debug=config.debug, lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.started_at = time.time()

    # Added last runs first: CORS wraps logging, which wraps error handling
    install_error_handling(app)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    app.include_router(chat_router)
    return app
