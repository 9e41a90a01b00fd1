"""
Main configuration class for Echo Companion.

Configuration is resolved once at process start (environment variables or a
YAML file) and handed to the server and client components as plain values.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from ..exceptions import ConfigurationError
from ..logging import get_logger
from .base import Environment
from .runtime import (
    APIConfig,
    ClientConfig,
    MemoryConfig,
    ModelConfig,
    MonitoringConfig,
    PersonaConfig,
)
from .yaml_loader import YAMLConfigLoader

logger = get_logger(__name__)

# Provider name -> environment variable holding its credential
_PROVIDER_KEY_ENV = {
    "gemini": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
}


@dataclass
class Config:
    """Main configuration class for Echo Companion."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    api: APIConfig = field(default_factory=APIConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    persona: PersonaConfig = field(default_factory=PersonaConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        """Validate values and apply environment-specific defaults."""
        if self.memory.context_turns < 0:
            raise ConfigurationError(
                "memory.context_turns must be >= 0", component="config"
            )
        if self.memory.session_ttl_seconds <= 0:
            raise ConfigurationError(
                "memory.session_ttl_seconds must be > 0", component="config"
            )
        if self.model.timeout_s <= 0 or self.client.request_timeout_s <= 0:
            raise ConfigurationError("timeouts must be > 0", component="config")

        if self.environment == Environment.PRODUCTION:
            self.debug = False
        elif self.environment == Environment.TESTING:
            self.debug = True
            self.monitoring.json_logs = False

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "Config":
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: if the file is missing, unreadable, not valid
                YAML or holds invalid settings.
        """
        try:
            data = YAMLConfigLoader.load_yaml(Path(config_path))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot load configuration file {config_path}: {e}",
                component="config",
            ) from e

        try:
            return cls(
                environment=Environment(data.get("environment", "development")),
                debug=bool(data.get("debug", False)),
                api=APIConfig(**data.get("api", {})),
                memory=MemoryConfig(**data.get("memory", {})),
                model=ModelConfig(**data.get("model", {})),
                persona=PersonaConfig(**data.get("persona", {})),
                client=ClientConfig(**data.get("client", {})),
                monitoring=MonitoringConfig(**data.get("monitoring", {})),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration file {config_path}: {e}", component="config"
            ) from e

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""

        def getenv_bool(name: str, default: bool) -> bool:
            v = os.getenv(name)
            return default if v is None else v.lower() in {"1", "true", "yes", "on"}

        def getenv_int(name: str, default: int) -> int:
            v = os.getenv(name)
            try:
                return default if v is None else int(v)
            except ValueError:
                logger.warning("Ignoring invalid integer", name=name, value=v)
                return default

        def getenv_float(name: str, default: float) -> float:
            v = os.getenv(name)
            try:
                return default if v is None else float(v)
            except ValueError:
                logger.warning("Ignoring invalid float", name=name, value=v)
                return default

        def getenv_str(name: str, default: str) -> str:
            return os.getenv(name, default)

        def getenv_list(name: str, default: List[str]) -> List[str]:
            v = os.getenv(name)
            if v is None:
                return default
            return [item.strip() for item in v.split(",") if item.strip()]

        defaults = cls()

        try:
            env = Environment(getenv_str("ECHO_ENV", "development"))
        except ValueError as e:
            raise ConfigurationError(str(e), component="config") from e

        api = APIConfig(
            host=getenv_str("ECHO_API__HOST", defaults.api.host),
            # PORT is honored for hosting platforms that inject it
            port=getenv_int("ECHO_API__PORT", getenv_int("PORT", defaults.api.port)),
            cors_origins=getenv_list("ECHO_API__CORS_ORIGINS", defaults.api.cors_origins),
            default_session_id=getenv_str(
                "ECHO_API__DEFAULT_SESSION_ID", defaults.api.default_session_id
            ),
        )

        memory = MemoryConfig(
            context_turns=getenv_int(
                "ECHO_MEMORY__CONTEXT_TURNS", defaults.memory.context_turns
            ),
            session_ttl_seconds=getenv_float(
                "ECHO_MEMORY__SESSION_TTL_SECONDS", defaults.memory.session_ttl_seconds
            ),
        )

        provider = getenv_str("ECHO_MODEL__PROVIDER", defaults.model.provider).lower()
        api_key = os.getenv("ECHO_MODEL__API_KEY")
        if api_key is None and provider in _PROVIDER_KEY_ENV:
            api_key = os.getenv(_PROVIDER_KEY_ENV[provider])

        model = ModelConfig(
            provider=provider,
            model=getenv_str("ECHO_MODEL__MODEL", defaults.model.model),
            api_key=api_key,
            base_url=os.getenv("ECHO_MODEL__BASE_URL"),
            temperature=getenv_float(
                "ECHO_MODEL__TEMPERATURE", defaults.model.temperature
            ),
            max_tokens=getenv_int("ECHO_MODEL__MAX_TOKENS", defaults.model.max_tokens),
            timeout_s=getenv_float("ECHO_MODEL__TIMEOUT_S", defaults.model.timeout_s),
        )

        persona = PersonaConfig(
            name=getenv_str("ECHO_PERSONA__NAME", defaults.persona.name),
            prompts_path=os.getenv("ECHO_PERSONA__PROMPTS_PATH"),
        )

        client = ClientConfig(
            backend_url=getenv_str(
                "ECHO_CLIENT__BACKEND_URL", defaults.client.backend_url
            ),
            request_timeout_s=getenv_float(
                "ECHO_CLIENT__REQUEST_TIMEOUT_S", defaults.client.request_timeout_s
            ),
            voice_mode=getenv_bool("ECHO_CLIENT__VOICE_MODE", defaults.client.voice_mode),
        )

        monitoring = MonitoringConfig(
            log_level=getenv_str("ECHO_MONITORING__LOG_LEVEL", "INFO"),
            json_logs=getenv_bool("ECHO_MONITORING__JSON_LOGS", True),
        )

        return cls(
            environment=env,
            debug=getenv_bool("ECHO_DEBUG", False),
            api=api,
            memory=memory,
            model=model,
            persona=persona,
            client=client,
            monitoring=monitoring,
        )

    def to_dict(self, redact_secrets: bool = True) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        data = asdict(self)
        data["environment"] = self.environment.value
        if redact_secrets and data["model"].get("api_key"):
            data["model"]["api_key"] = "***"
        return data

    def save(self, config_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.to_dict(redact_secrets=False), f, default_flow_style=False, indent=2
            )
