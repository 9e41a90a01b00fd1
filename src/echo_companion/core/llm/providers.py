"""
Model backend implementations for Echo Companion.

Every backend exposes ``send_message(history, new_text)`` and returns the
reply text, raising ``UpstreamUnavailable`` on any failure.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config.runtime import ModelConfig
from ..exceptions import ConfigurationError, UpstreamUnavailable
from ..logging import get_logger
from ..types import ChatMessage, Role

logger = get_logger(__name__)


class LLMProvider(Enum):
    """Supported model providers."""

    GEMINI = "gemini"
    OLLAMA = "ollama"
    OPENAI = "openai"


class ModelBackend(ABC):
    """Abstract interface for language-model backends."""

    name: str = "model"

    @abstractmethod
    async def send_message(
        self,
        history: Sequence[ChatMessage],
        new_text: str,
        system: Optional[str] = None,
    ) -> str:
        """Send ``new_text`` after ``history`` and return the reply text."""
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        pass

    def get_capabilities(self) -> Dict[str, Any]:
        return {"provider": self.name, "requires_internet": True}


class _HTTPBackend(ModelBackend):
    """Shared httpx client handling for REST backends."""

    def __init__(self, config: ModelConfig, default_base_url: str):
        self.config = config
        self.base_url = config.base_url or default_base_url
        self.client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.config.timeout_s
            )
        return self.client

    async def _post_json(
        self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        try:
            response = await self._get_client().post(path, json=payload, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(
                f"{self.name} request timed out", reason=str(e), component=self.name
            ) from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"{self.name} returned HTTP {e.response.status_code}",
                reason=e.response.text[:200],
                component=self.name,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(
                f"{self.name} request failed", reason=str(e), component=self.name
            ) from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                f"{self.name} returned an unexpected payload", component=self.name
            )
        return data

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None


class GeminiProvider(_HTTPBackend):
    """Google Gemini through the public generateContent REST endpoint."""

    name = "gemini"

    def __init__(self, config: ModelConfig):
        super().__init__(config, "https://generativelanguage.googleapis.com")

    async def send_message(
        self,
        history: Sequence[ChatMessage],
        new_text: str,
        system: Optional[str] = None,
    ) -> str:
        if not self.config.api_key:
            raise UpstreamUnavailable("API key not configured", component=self.name)

        contents: List[Dict[str, Any]] = [
            {"role": message.role.value, "parts": [{"text": message.content}]}
            for message in history
        ]
        contents.append({"role": "user", "parts": [{"text": new_text}]})

        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        data = await self._post_json(
            f"/v1beta/models/{self.config.model}:generateContent",
            payload,
            params={"key": self.config.api_key},
        )

        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(str(part.get("text", "")) for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailable(
                "gemini returned no candidates", reason=str(e), component=self.name
            ) from e


class OllamaProvider(_HTTPBackend):
    """Ollama chat endpoint for locally served open models."""

    name = "ollama"

    def __init__(self, config: ModelConfig):
        super().__init__(config, "http://localhost:11434")

    async def send_message(
        self,
        history: Sequence[ChatMessage],
        new_text: str,
        system: Optional[str] = None,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(
            {
                "role": "user" if m.role is Role.USER else "assistant",
                "content": m.content,
            }
            for m in history
        )
        messages.append({"role": "user", "content": new_text})

        data = await self._post_json(
            "/api/chat",
            {
                "model": self.config.model,
                "messages": messages,
                "stream": False,
                "options": {
                    "temperature": self.config.temperature,
                    "num_predict": self.config.max_tokens,
                },
            },
        )
        try:
            return str(data["message"]["content"])
        except (KeyError, TypeError) as e:
            raise UpstreamUnavailable(
                "ollama returned no message", reason=str(e), component=self.name
            ) from e

    def get_capabilities(self) -> Dict[str, Any]:
        return {"provider": self.name, "requires_internet": False}


class OpenAIProvider(ModelBackend):
    """OpenAI chat completions (requires the ``openai`` extra)."""

    name = "openai"

    def __init__(self, config: ModelConfig):
        self.config = config
        self.client: Optional[Any] = None

    def _get_client(self) -> Any:
        if self.client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                logger.error("openai not available for OpenAI provider")
                raise

            self.client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
            )
        return self.client

    async def send_message(
        self,
        history: Sequence[ChatMessage],
        new_text: str,
        system: Optional[str] = None,
    ) -> str:
        if not self.config.api_key:
            raise UpstreamUnavailable("API key not configured", component=self.name)

        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(
            {
                "role": "user" if m.role is Role.USER else "assistant",
                "content": m.content,
            }
            for m in history
        )
        messages.append({"role": "user", "content": new_text})

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as e:
            raise UpstreamUnavailable(
                "openai request failed", reason=str(e), component=self.name
            ) from e
        return str(response.choices[0].message.content or "")

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None


_PROVIDERS = {
    LLMProvider.GEMINI: GeminiProvider,
    LLMProvider.OLLAMA: OllamaProvider,
    LLMProvider.OPENAI: OpenAIProvider,
}


def create_backend(config: ModelConfig) -> ModelBackend:
    """Create the model backend named by ``config.provider``."""
    try:
        provider = LLMProvider(config.provider.lower())
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown model provider: {config.provider}",
            details={"supported": [p.value for p in LLMProvider]},
            component="llm",
        ) from e

    backend = _PROVIDERS[provider](config)
    logger.info("Created model backend", provider=provider.value, model=config.model)
    return backend
