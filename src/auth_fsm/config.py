"""Configuration for the payment/authorization FSM.

Configuration is loaded from:
- environment variables prefixed with `AUTH_FSM_`
- and a local `.env` file (if present)

Only collaborator-facing knobs live here. The engine itself takes no
configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthFsmSettings(BaseSettings):
    """Settings for building and driving the workflow.

    Environment variables:
    - AUTH_FSM_LOG_LEVEL             (optional)
    - AUTH_FSM_MAX_PAYMENT_ATTEMPTS  (optional)
    - AUTH_FSM_MAX_AUTH_ATTEMPTS     (optional)
    - AUTH_FSM_RETRYABLE_ERRORS      (optional, JSON list)
    - AUTH_FSM_CHECKPOINT_PATH       (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `AuthFsmSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )

    max_payment_attempts: int = Field(
        default=5,
        gt=0,
        description="Payment creations allowed before giving up",
    )
    max_auth_attempts: int = Field(
        default=5,
        gt=0,
        description="Authorization creations allowed before giving up",
    )
    retryable_errors: list[str] = Field(
        default_factory=lambda: ["can retry"],
        description="Recorded error strings that allow another attempt",
    )

    checkpoint_path: Path = Field(
        default=Path("agent_state/checkpoint.json"),
        description="Path where the workflow checkpoint is persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_FSM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value!r}")
        return level
