"""
Configuration management for hostbarrier.
"""
from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from hostbarrier.errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BarrierConfig(BaseSettings):
    """Barrier settings loaded from ``BARRIER_*`` environment variables.

    Keyword arguments passed to the constructor take precedence over the
    environment, which is how the CLI applies its flags.
    """

    # Wire
    port: int = Field(5000, ge=0, le=65535)
    buffer_size: int = Field(1024, gt=0)
    bind_address: str = "0.0.0.0"

    # Announce rounds
    max_attempts: int = Field(5, ge=1)
    retry_interval_ms: int = Field(1000, ge=0)
    early_stop: bool = False

    # Listening
    receive_poll_interval_ms: int = Field(500, gt=0)
    overall_timeout_ms: Optional[int] = Field(None, gt=0)

    # Membership
    strict_membership: bool = False
    hostname: Optional[str] = None

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Accept level names case-insensitively."""
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v):
        """An explicit identity must not be empty."""
        if v is not None and v == "":
            raise ValueError("hostname must not be empty")
        return v

    model_config = {
        "env_file": ".env",
        "env_prefix": "BARRIER_",
        "case_sensitive": False,
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def retry_interval(self) -> float:
        """Delay between announce rounds in seconds."""
        return self.retry_interval_ms / 1000.0

    @property
    def receive_poll_interval(self) -> float:
        """Length of one cancellable receive slice in seconds."""
        return self.receive_poll_interval_ms / 1000.0

    @property
    def overall_timeout(self) -> Optional[float]:
        """Overall deadline in seconds, ``None`` when the barrier may wait forever."""
        if self.overall_timeout_ms is None:
            return None
        return self.overall_timeout_ms / 1000.0


def get_config(**overrides: Any) -> BarrierConfig:
    """Build a :class:`BarrierConfig`, reporting invalid values as :class:`ConfigError`.

    ``None`` overrides are dropped so that unset CLI flags fall back to the
    environment and the defaults.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return BarrierConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
