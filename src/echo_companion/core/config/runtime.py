"""
Runtime configuration sections for Echo Companion.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base import CONTEXT_TURNS, DEFAULT_SESSION_ID, SESSION_TTL_SECONDS


@dataclass
class MonitoringConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    json_logs: bool = True


@dataclass
class MemoryConfig:
    """Session memory configuration."""

    context_turns: int = CONTEXT_TURNS
    session_ttl_seconds: float = SESSION_TTL_SECONDS


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173"]
    )
    default_session_id: str = DEFAULT_SESSION_ID


@dataclass
class ModelConfig:
    """Language-model backend configuration."""

    provider: str = "gemini"  # gemini | ollama | openai
    model: str = "gemini-1.5-flash"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 256
    timeout_s: float = 30.0


@dataclass
class PersonaConfig:
    """Persona prompt configuration."""

    name: str = "Echo"
    prompts_path: Optional[str] = None  # YAML with system_prompt / opening


@dataclass
class ClientConfig:
    """Voice/text client configuration."""

    backend_url: str = "http://localhost:3000"
    request_timeout_s: float = 30.0
    voice_mode: bool = True
