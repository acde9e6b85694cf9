import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from chainscope.services.circuit_breaker import CircuitBreakerConfig
from chainscope.services.retry import RetryPolicy

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Retry Configuration
    max_retries: int = Field(default=3, ge=0, alias="MAX_RETRIES")
    initial_delay_ms: float = Field(default=1000, gt=0, alias="INITIAL_DELAY_MS")
    backoff_multiplier: float = Field(default=2.0, ge=1, alias="BACKOFF_MULTIPLIER")

    # Circuit Breaker Configuration
    circuit_failure_threshold: int = Field(
        default=5, gt=0, alias="CIRCUIT_FAILURE_THRESHOLD"
    )
    circuit_trip_window_ms: float = Field(
        default=60_000, gt=0, alias="CIRCUIT_TRIP_WINDOW_MS"
    )

    # Search Configuration
    default_page_limit: int = Field(default=20, gt=0, alias="DEFAULT_PAGE_LIMIT")
    adapter_timeout_seconds: float = Field(
        default=15.0, gt=0, alias="ADAPTER_TIMEOUT_SECONDS"
    )
    dispatch_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="DISPATCH_TIMEOUT_SECONDS"
    )

    # Verification Configuration
    verification_cache_ttl_seconds: float = Field(
        default=300.0, ge=0, alias="VERIFICATION_CACHE_TTL_SECONDS"
    )

    # Chain topology
    chains_config_path: str = Field(default="chains.yaml", alias="CHAINS_CONFIG_PATH")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./chainscope.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    debug: bool = Field(default=False, alias="DEBUG")

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the process environment (and .env)."""
        return cls.model_validate(dict(os.environ))

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay_ms / 1000,
            backoff_multiplier=self.backoff_multiplier,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.circuit_failure_threshold,
            trip_window=timedelta(milliseconds=self.circuit_trip_window_ms),
        )


global_settings = Settings.from_env()
