"""
Tests for configuration management.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from echo_companion.core.config import Config, Environment, MemoryConfig
from echo_companion.core.exceptions import ConfigurationError


class TestConfig:
    """Test configuration management."""

    def test_config_default_initialization(self) -> None:
        """Test default config initialization."""
        config = Config()
        assert config.environment == Environment.DEVELOPMENT
        assert config.memory.context_turns == 6
        assert config.memory.session_ttl_seconds == 3600
        assert config.api.port == 3000
        assert config.api.cors_origins == ["http://localhost:5173"]
        assert config.api.default_session_id == "default"
        assert config.model.provider == "gemini"
        assert config.client.request_timeout_s == 30.0

    def test_production_forces_debug_off(self) -> None:
        config = Config(environment=Environment.PRODUCTION, debug=True)
        assert config.debug is False

    def test_testing_environment(self) -> None:
        config = Config(environment=Environment.TESTING)
        assert config.debug is True
        assert config.monitoring.json_logs is False

    def test_invalid_memory_settings(self) -> None:
        with pytest.raises(ConfigurationError):
            Config(memory=MemoryConfig(context_turns=-1))
        with pytest.raises(ConfigurationError):
            Config(memory=MemoryConfig(session_ttl_seconds=0))

    def test_to_dict_redacts_api_key(self) -> None:
        config = Config()
        config.model.api_key = "secret"
        assert config.to_dict()["model"]["api_key"] == "***"
        assert config.to_dict(redact_secrets=False)["model"]["api_key"] == "secret"
        assert config.to_dict()["environment"] == "development"


class TestConfigFromEnv:
    """Test environment variable loading."""

    def test_from_env_sections(self) -> None:
        env = {
            "ECHO_ENV": "production",
            "ECHO_API__HOST": "0.0.0.0",
            "ECHO_API__CORS_ORIGINS": "http://a.test, http://b.test",
            "ECHO_MEMORY__CONTEXT_TURNS": "4",
            "ECHO_MEMORY__SESSION_TTL_SECONDS": "60",
            "ECHO_MODEL__PROVIDER": "ollama",
            "ECHO_MODEL__MODEL": "llama3",
            "ECHO_CLIENT__VOICE_MODE": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.environment == Environment.PRODUCTION
        assert config.api.host == "0.0.0.0"
        assert config.api.cors_origins == ["http://a.test", "http://b.test"]
        assert config.memory.context_turns == 4
        assert config.memory.session_ttl_seconds == 60.0
        assert config.model.provider == "ollama"
        assert config.model.model == "llama3"
        assert config.client.voice_mode is False

    def test_port_variable(self) -> None:
        with patch.dict(os.environ, {"PORT": "8080"}, clear=True):
            assert Config.from_env().api.port == 8080
        with patch.dict(
            os.environ, {"PORT": "8080", "ECHO_API__PORT": "9000"}, clear=True
        ):
            assert Config.from_env().api.port == 9000

    def test_provider_api_key_fallback(self) -> None:
        with patch.dict(os.environ, {"GOOGLE_API_KEY": "g-key"}, clear=True):
            assert Config.from_env().model.api_key == "g-key"
        with patch.dict(
            os.environ,
            {"ECHO_MODEL__PROVIDER": "openai", "OPENAI_API_KEY": "o-key"},
            clear=True,
        ):
            assert Config.from_env().model.api_key == "o-key"

    def test_invalid_number_uses_default(self) -> None:
        with patch.dict(
            os.environ, {"ECHO_MEMORY__CONTEXT_TURNS": "many"}, clear=True
        ):
            assert Config.from_env().memory.context_turns == 6

    def test_invalid_environment(self) -> None:
        with patch.dict(os.environ, {"ECHO_ENV": "staging"}, clear=True):
            with pytest.raises(ConfigurationError):
                Config.from_env()


class TestConfigFile:
    """Test YAML configuration files."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        config = Config()
        config.memory.context_turns = 8
        config.persona.name = "Sage"
        path = tmp_path / "echo.yaml"
        config.save(path)

        loaded = Config.from_file(path)
        assert loaded.memory.context_turns == 8
        assert loaded.persona.name == "Sage"

    def test_unknown_field_is_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("memory:\n  window: 3\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            Config.from_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_file(tmp_path / "missing.yaml")
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_malformed_yaml_is_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("api:\n  cors_origins: [a, b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="broken.yaml"):
            Config.from_file(path)
