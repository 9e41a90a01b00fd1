"""
Configuration management for Echo Companion.

Provides a clean public API for all configuration components.
"""

from .base import CONTEXT_TURNS, DEFAULT_SESSION_ID, SESSION_TTL_SECONDS, Environment
from .main import Config
from .runtime import (
    APIConfig,
    ClientConfig,
    MemoryConfig,
    ModelConfig,
    MonitoringConfig,
    PersonaConfig,
)

__all__ = [
    "Config",
    "Environment",
    "CONTEXT_TURNS",
    "DEFAULT_SESSION_ID",
    "SESSION_TTL_SECONDS",
    "APIConfig",
    "ClientConfig",
    "MemoryConfig",
    "ModelConfig",
    "MonitoringConfig",
    "PersonaConfig",
]
