"""
Shared configuration management for AFKMate Access Layer.
"""

from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Only ever used outside production; see BaseConfig.effective_token_secret.
DEV_TOKEN_SECRET = "dev-only-secret-do-not-use-in-prod"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="AFKMATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "development"
    log_level: str = "info"
    json_logs: bool = True
    version: str = "0.1.0"

    # Token signing
    token_secret: Optional[SecretStr] = None

    # Distributed rate limiting (unset => in-process counters only)
    redis_url: Optional[str] = None
    redis_timeout_seconds: float = 0.5
    redis_failure_threshold: int = 5
    redis_recovery_timeout_seconds: float = 30.0
    rate_limit_sweep_interval_seconds: float = 60.0

    # LLM collaborator
    anthropic_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("AFKMATE_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
    )
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        validation_alias=AliasChoices("AFKMATE_LLM_MODEL", "CLAUDE_MODEL"),
    )
    llm_base_url: str = "https://api.anthropic.com"
    llm_timeout_seconds: float = 60.0

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    def effective_token_secret(self) -> Optional[str]:
        """Resolve the signing secret.

        Production never falls back to a built-in secret: without
        AFKMATE_TOKEN_SECRET the result is None and token operations fail closed.
        """
        if self.token_secret is not None and self.token_secret.get_secret_value():
            return self.token_secret.get_secret_value()
        if self.is_production:
            return None
        return DEV_TOKEN_SECRET


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
