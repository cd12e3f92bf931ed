"""
Lifecycle Event Models

Notifications emitted by the executor as transactions move through the queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

if TYPE_CHECKING:
    from ...core.execution.models import QueuedTransaction, TransactionReceipt


class EventType(str, Enum):
    """Lifecycle notifications."""

    # Per-transaction transitions
    TRANSACTION_QUEUED = "transaction:queued"
    TRANSACTION_STARTED = "transaction:started"
    TRANSACTION_SENT = "transaction:sent"
    TRANSACTION_CONFIRMED = "transaction:confirmed"
    TRANSACTION_FAILED = "transaction:failed"
    TRANSACTION_RETRY = "transaction:retry"
    TRANSACTION_CANCELLED = "transaction:cancelled"

    # Queue-level signals
    QUEUE_EMPTY = "queue:empty"
    QUEUE_PAUSED = "queue:paused"
    QUEUE_RESUMED = "queue:resumed"


TERMINAL_EVENTS = frozenset({
    EventType.TRANSACTION_CONFIRMED,
    EventType.TRANSACTION_FAILED,
    EventType.TRANSACTION_CANCELLED,
})


@dataclass
class TransactionEvent:
    """A single lifecycle notification."""

    type: EventType
    transaction: Optional[QueuedTransaction] = None
    tx_hash: Optional[str] = None
    receipt: Optional[TransactionReceipt] = None
    error: Optional[BaseException] = None
    attempt: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def transaction_id(self) -> Optional[str]:
        return self.transaction.id if self.transaction else None


class EventTimeoutError(TimeoutError):
    """Waiting for a notification took longer than allowed."""


# Sync callbacks run inline; coroutine results are scheduled as tasks
EventCallback = Callable[[TransactionEvent], Union[None, Awaitable[Any]]]
EventPredicate = Callable[[TransactionEvent], bool]
