"""
Configuration for ChargeGuard PMS Connectors
Environment-driven defaults for transport resilience, auth and logging
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HubSettings(BaseSettings):
    """
    Process-wide connector defaults.

    Every field can be overridden with a ``CHARGEGUARD_PMS_`` environment
    variable; per-adapter ``options`` in the connector config take precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHARGEGUARD_PMS_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    environment: str = Field("production", description="Deployment environment name")

    # Transport
    request_timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")
    auth_timeout: float = Field(15.0, gt=0, description="Token endpoint timeout in seconds")
    max_retries: int = Field(3, ge=0, description="Retries after the first attempt")
    retry_base_delay: float = Field(1.0, ge=0, description="Backoff base delay in seconds")
    retry_jitter: float = Field(0.1, ge=0, le=1, description="Max jitter as a fraction of the delay")

    # Circuit breaker
    breaker_failure_threshold: int = Field(5, ge=1)
    breaker_recovery_timeout: float = Field(30.0, ge=0, description="Seconds before half-open")
    breaker_success_threshold: int = Field(1, ge=1)

    # Token bucket
    rate_limit_capacity: int = Field(60, ge=1)
    rate_limit_refill_rate: int = Field(60, ge=1)
    rate_limit_interval: float = Field(60.0, gt=0, description="Refill interval in seconds")

    # OAuth
    token_refresh_margin: float = Field(
        300.0, ge=0, description="Refresh tokens this many seconds before expiry"
    )

    # Logging
    log_level: str = Field("INFO")
    log_json: bool = Field(True, description="Render logs as JSON lines")

    client_name: str = Field("ChargeGuard", description="Client identifier sent to vendors")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()


@lru_cache(maxsize=1)
def get_settings() -> HubSettings:
    """Load settings once per process"""
    return HubSettings()
