"""Configuration management for Courier."""

import logging
from typing import Any, Literal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from courier.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Courier settings.

    All settings can be overridden via environment variables with
    the COURIER_ prefix, e.g. COURIER_RETRY_INTERVAL_SECONDS=30.
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )

    # Webhook defaults and limits
    default_max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the initial attempt when a webhook does not say",
    )
    default_timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="HTTP timeout per attempt when a webhook does not say",
    )
    max_event_types: int = Field(
        default=10,
        ge=1,
        description="Maximum event types a single webhook may subscribe to",
    )
    max_url_length: int = Field(
        default=2048,
        ge=1,
        description="Maximum length of a webhook URL",
    )
    max_retries_limit: int = Field(
        default=10,
        ge=0,
        description="Upper bound accepted for a webhook's max_retries",
    )
    max_timeout_seconds: int = Field(
        default=120,
        ge=1,
        description="Upper bound accepted for a webhook's timeout_seconds",
    )

    # Retry schedule
    retry_delays_minutes: list[int] = Field(
        default_factory=lambda: [1, 5, 15],
        min_length=1,
        description="Delay before retry N; the last entry repeats for later retries",
    )
    retry_enabled: bool = Field(
        default=True,
        description="Run the periodic retry sweep",
    )
    retry_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between retry sweeps",
    )
    retry_batch_size: int = Field(
        default=100,
        ge=1,
        description="Maximum due deliveries picked up per sweep",
    )

    # Workers
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        description="Maximum HTTP attempts in flight per coordinator or scheduler",
    )
    claim_lease_seconds: int = Field(
        default=180,
        ge=1,
        description="How long a claimed delivery stays reserved for its worker",
    )

    # Outbound request
    response_body_max_chars: int = Field(
        default=1000,
        ge=0,
        description="Receiver response body is truncated to this many characters",
    )
    user_agent: str = Field(
        default="Courier-Webhooks/1.0",
        description="User-Agent header on outbound deliveries",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format: json for production, text for development",
    )

    # Admin API
    cors_enabled: bool = Field(default=False, description="Enable CORS middleware")
    cors_allow_origins: list[str] = Field(
        default_factory=list,
        description="Allowed CORS origins",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_settings(self) -> "Settings":
        """Validate the retry schedule and claim lease."""
        if any(delay < 0 for delay in self.retry_delays_minutes):
            raise ValueError("retry_delays_minutes must not contain negative delays")

        # A claim must outlive the slowest allowed attempt, otherwise a second
        # worker could pick the delivery up while the first is still waiting.
        if self.claim_lease_seconds <= self.max_timeout_seconds:
            raise ValueError(
                f"claim_lease_seconds ({self.claim_lease_seconds}) must be greater than "
                f"max_timeout_seconds ({self.max_timeout_seconds})"
            )

        if self.default_timeout_seconds > self.max_timeout_seconds:
            raise ValueError("default_timeout_seconds must not exceed max_timeout_seconds")
        if self.default_max_retries > self.max_retries_limit:
            raise ValueError("default_max_retries must not exceed max_retries_limit")

        if self.env == "production" and self.log_format != "json":
            logger.warning("Non-JSON log format configured in production")

        return self


def load_settings(**overrides: Any) -> Settings:
    """Build Settings from the environment plus explicit overrides.

    Raises:
        ConfigurationError: If any value is missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = sorted(
            {".".join(str(part) for part in error["loc"]) or "settings" for error in e.errors()}
        )
        raise ConfigurationError(f"invalid configuration: {', '.join(fields)}") from e
