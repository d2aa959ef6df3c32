"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``SPACESAFE_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields
(e.g. ``SPACESAFE_RESILIENCE__MAX_RETRIES_PER_STRATEGY=3``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class ServiceSettings(BaseModel):
    """Base URLs of the backend microservices."""

    auth_url: str = "http://localhost:3001/api"
    location_url: str = "http://localhost:5004/api"
    work_order_url: str = "http://localhost:3012/api"
    timeout: float = Field(
        default=15.0, gt=0.0, description="Per-request timeout in seconds."
    )


class ResilienceSettings(BaseModel):
    """Multi-strategy retry and fallback policy."""

    max_retries_per_strategy: int = Field(default=2, ge=1, le=10)
    backoff_base_seconds: float = Field(default=0.2, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    backoff_max_seconds: float = Field(default=30.0, gt=0.0)
    non_retryable_statuses: list[int] = Field(
        default_factory=lambda: [400, 404, 405],
        description="Statuses that mean 'wrong endpoint shape': fall back, no retry.",
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional overall deadline for one logical operation.",
    )

    @field_validator("non_retryable_statuses")
    @classmethod
    def _check_statuses(cls, value: list[int]) -> list[int]:
        for status in value:
            if not 100 <= status <= 599:
                msg = f"Not an HTTP status code: {status}"
                raise ValueError(msg)
        return sorted(set(value))


class SessionSettings(BaseModel):
    """Credentials for the current user session."""

    token: SecretStr | None = None
    user_id: str | None = None
    role: Literal["admin", "manager", "technician", "user"] | None = None


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``SPACESAFE_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="SPACESAFE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    services: ServiceSettings = Field(default_factory=ServiceSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults

        Args:
            settings_cls: The settings class.
            init_settings: Init / programmatic overrides.
            env_settings: Environment variable source.
            dotenv_settings: Dotenv file source (.env).
            file_secret_settings: Secret file source (unused).

        Returns:
            Ordered tuple of settings sources (first = highest priority).
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
