from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class RetryStrategy(str, Enum):
    """Delay schedules available to the retry policy."""

    EXPONENTIAL_BACKOFF = "exponential_backoff"
    LINEAR = "linear"
    FIXED_DELAY = "fixed_delay"
    NONE = "none"


class QueueSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TXSEQ_",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Keep the retry delay window consistent."""

        super().model_post_init(__context)

        if self.max_retry_delay_ms < self.retry_delay_ms:
            object.__setattr__(self, "max_retry_delay_ms", self.retry_delay_ms)

    # Scheduling
    max_concurrent: int = Field(default=1, ge=1, description="Maximum transactions in flight")
    poll_interval_seconds: float = Field(
        default=0.1,
        gt=0,
        description="Interval at which the run loop re-checks when idle or at capacity",
    )
    auto_start: bool = Field(default=True, description="Start the executor on construction")
    nonce_manager: bool = Field(default=True, description="Enable automatic nonce management")

    # Retry Settings
    default_max_retries: int = Field(default=3, ge=0, description="Default retry ceiling per transaction")
    retry_strategy: RetryStrategy = Field(
        default=RetryStrategy.EXPONENTIAL_BACKOFF,
        description="Retry delay schedule",
    )
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base retry delay in milliseconds")
    max_retry_delay_ms: int = Field(default=30000, ge=0, description="Maximum retry delay in milliseconds")
    backoff_multiplier: float = Field(default=2.0, gt=0, description="Exponential backoff multiplier")

    # Confirmation
    confirmation_blocks: int = Field(default=1, ge=1, description="Confirmations required per transaction")
    confirmation_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Maximum time the RPC provider waits for a receipt",
    )
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Receipt polling interval for the RPC provider",
    )

    # RPC Provider
    rpc_url: str = Field(default="", description="JSON-RPC endpoint of a node holding the signer key")
    request_timeout_seconds: int = Field(default=30, description="RPC request timeout")

    # Diagnostics
    debug: bool = Field(default=False, description="Log every lifecycle notification")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def has_rpc_url(self) -> bool:
        return bool(self.rpc_url)


# Global settings instance
settings = QueueSettings()
