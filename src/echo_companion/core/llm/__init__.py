"""
Language-model integration: prompt construction and provider backends.
"""

from .prompt_builder import PromptBuilder
from .providers import (
    GeminiProvider,
    LLMProvider,
    ModelBackend,
    OllamaProvider,
    OpenAIProvider,
    create_backend,
)

__all__ = [
    "PromptBuilder",
    "ModelBackend",
    "LLMProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "create_backend",
]
