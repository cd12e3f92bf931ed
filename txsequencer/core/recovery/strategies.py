"""
Retry Policy

Decides whether a failed transaction is retried and how long to wait first.
"""

import logging
import math
import random
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional

from ...config import QueueSettings, RetryStrategy
from .errors import classify_error

if TYPE_CHECKING:
    from ..execution.models import QueuedTransaction


@dataclass
class RetryConfig:
    """Configuration for retry behavior. Delays are in milliseconds."""

    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "RetryConfig":
        return cls(
            strategy=settings.retry_strategy,
            max_retries=settings.default_max_retries,
            base_delay_ms=settings.retry_delay_ms,
            max_delay_ms=settings.max_retry_delay_ms,
            backoff_multiplier=settings.backoff_multiplier,
        )


class RetryPolicy:
    """
    Stateless retry policy.

    Strategies:
    - EXPONENTIAL_BACKOFF: base * multiplier^(attempt-1) plus up to 10% jitter
    - LINEAR: base * attempt
    - FIXED_DELAY: base
    - NONE: 0

    Every delay is floored to whole milliseconds and capped at max_delay_ms.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def config(self) -> RetryConfig:
        return replace(self._config)

    def update_config(self, **changes) -> None:
        self._config = replace(self._config, **changes)

    def should_retry(self, transaction: "QueuedTransaction", error: BaseException) -> bool:
        if transaction.retry_count >= transaction.max_retries:
            return False

        ctx = classify_error(error)
        if not ctx.recoverable:
            self.logger.debug(
                "Not retrying %s: %s error", transaction.id, ctx.category.value
            )
        return ctx.recoverable

    def get_delay(self, attempt: int) -> int:
        """Delay in milliseconds before the given retry attempt (1-based)."""
        config = self._config
        strategy = config.strategy

        if strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            try:
                delay = config.base_delay_ms * (config.backoff_multiplier ** (attempt - 1))
            except OverflowError:
                return config.max_delay_ms if config.base_delay_ms else 0
            # Jitter spreads retries of transactions that failed together
            delay += random.uniform(0, config.jitter_factor) * delay
        elif strategy == RetryStrategy.LINEAR:
            delay = config.base_delay_ms * attempt
        elif strategy == RetryStrategy.FIXED_DELAY:
            delay = config.base_delay_ms
        elif strategy == RetryStrategy.NONE:
            return 0
        else:
            delay = config.base_delay_ms

        return int(math.floor(min(delay, config.max_delay_ms)))

    def get_max_retry_time(self) -> int:
        """Upper bound, in milliseconds, of waiting across all retries."""
        return sum(self.get_delay(attempt) for attempt in range(1, self._config.max_retries + 1))
