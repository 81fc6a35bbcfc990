"""
Unit tests for shared configuration and error mapping.
"""

import pytest

from afkmate_shared.config import DEV_TOKEN_SECRET, BaseConfig, get_config
from afkmate_shared.errors import (
    BackendUnavailableError,
    ConfigurationError,
    ExternalServiceError,
    ValidationError,
)
from afkmate_shared.logging import clear_context, set_request_id


class TestConfig:
    """Test cases for BaseConfig."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for name in ("AFKMATE_ENV", "AFKMATE_TOKEN_SECRET", "AFKMATE_REDIS_URL",
                     "ANTHROPIC_API_KEY", "AFKMATE_ANTHROPIC_API_KEY", "CLAUDE_MODEL", "AFKMATE_LLM_MODEL"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = get_config("api", 8000)

        assert config.service_name == "api"
        assert config.port == 8000
        assert config.env == "development"
        assert config.redis_url is None
        assert config.redis_timeout_seconds == 0.5
        assert config.llm_model == "claude-sonnet-4-20250514"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("AFKMATE_REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("AFKMATE_REDIS_FAILURE_THRESHOLD", "7")

        config = BaseConfig()

        assert config.redis_url == "redis://cache:6379/0"
        assert config.redis_failure_threshold == 7

    def test_llm_aliases(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        monkeypatch.setenv("CLAUDE_MODEL", "claude-test")

        config = BaseConfig()

        assert config.anthropic_api_key.get_secret_value() == "sk-test"
        assert config.llm_model == "claude-test"

    def test_configured_secret_is_used(self):
        config = BaseConfig(env="production", token_secret="s3cret")
        assert config.effective_token_secret() == "s3cret"

    def test_secret_is_not_rendered(self):
        config = BaseConfig(token_secret="s3cret")
        assert "s3cret" not in repr(config)

    def test_development_falls_back(self):
        assert BaseConfig(env="development").effective_token_secret() == DEV_TOKEN_SECRET

    @pytest.mark.parametrize("env", ["production", "PRODUCTION"])
    def test_production_fails_closed(self, env):
        config = BaseConfig(env=env)

        assert config.is_production is True
        assert config.effective_token_secret() is None


class TestErrors:
    """Canonical exceptions map to HTTP statuses."""

    @pytest.mark.parametrize("error,status,code", [
        (ValidationError("bad"), 400, "VALIDATION_ERROR"),
        (ConfigurationError("no secret"), 503, "CONFIGURATION_ERROR"),
        (ExternalServiceError("llm", "down"), 502, "EXTERNAL_SERVICE_ERROR"),
        (BackendUnavailableError("redis"), 503, "BACKEND_UNAVAILABLE"),
    ])
    def test_status_and_code(self, error, status, code):
        assert error.status_code == status
        assert error.code == code

    def test_response_carries_request_id(self):
        set_request_id("req-1")
        try:
            body = ValidationError("bad", details={"field": "input"}).to_response()
        finally:
            clear_context()

        assert body.request_id == "req-1"
        assert body.message == "bad"
        assert body.details == {"field": "input"}

    def test_external_service_prefix(self):
        assert ExternalServiceError("llm", "down").message == "llm: down"
