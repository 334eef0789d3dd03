"""Configuration management for Pixel."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ModelNotConfiguredError
from .prompts import DEFAULT_SYSTEM_PROMPT

MODEL_NOT_CONFIGURED_ERROR = "{field} is not configured. Set PIXEL_{env} (e.g., 'ollama:gemma2:2b')."


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PIXEL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model Configuration
    router_model: str = Field(default="ollama:functiongemma:latest", description="Model deciding on actions")
    responder_model: str = Field(default="ollama:gemma2:2b", description="Model producing the spoken reply")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default="http://localhost:11434/v1", description="Optional API base URL")
    router_max_tokens: int = Field(default=300, ge=1)
    responder_max_tokens: int = Field(default=500, ge=1)
    model_timeout_seconds: float | None = Field(default=60.0, description="Timeout for one model call")

    # Pipeline Configuration
    action_timeout_seconds: float = Field(default=10.0, gt=0, description="Deadline for delegated actions")
    max_history_pairs: int = Field(default=10, ge=1, description="User/agent pairs kept per session")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    # Server Configuration
    host: str = Field(default="0.0.0.0")  # noqa: S104
    port: int = Field(default=3001)

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment and validate model names.

    Args:
        **overrides: Field values taking precedence over the environment

    Returns:
        Settings instance
    """
    settings = Settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)

    for field, env in (("router_model", "ROUTER_MODEL"), ("responder_model", "RESPONDER_MODEL")):
        if not str(getattr(settings, field) or "").strip():
            raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR.format(field=field, env=env))
    return settings
