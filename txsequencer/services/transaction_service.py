"""
Transaction Queue Service

Submission surface that ties the queue, the executor and the event emitter
together for one signer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..config import QueueSettings, settings as default_settings
from ..core.execution.executor import TransactionExecutor
from ..core.execution.models import (
    QueuedTransaction,
    QueueStatistics,
    TransactionIntent,
    TransactionStatus,
    TransactionValidation,
)
from ..core.execution.queue import TransactionQueue
from ..providers.base import Provider
from .events import (
    TERMINAL_EVENTS,
    EventCallback,
    EventTimeoutError,
    EventType,
    TransactionEventEmitter,
)

logger = logging.getLogger(__name__)

# Events after which a drain may have completed
DRAIN_EVENTS = frozenset(TERMINAL_EVENTS | {EventType.QUEUE_EMPTY})


class TransactionFailedError(Exception):
    """A transaction being waited on ended without confirmation."""

    def __init__(self, transaction: QueuedTransaction):
        reason = transaction.error or transaction.status.value
        super().__init__(f"Transaction {transaction.id} did not confirm: {reason}")
        self.transaction = transaction


class TransactionQueueService:
    """
    Queue-and-execute service for a single signer.

    Manages:
    - Submission of single, batched and sequential transactions
    - Manual cancel / retry / remove / reorder
    - Executor start, stop and shutdown
    - Waiting for individual confirmations or a full drain
    """

    def __init__(
        self,
        provider: Provider,
        settings: Optional[QueueSettings] = None,
        **overrides: Any,
    ):
        if overrides:
            base = settings or default_settings
            settings = QueueSettings(**{**base.model_dump(), **overrides})
        self.settings = settings or default_settings

        self.emitter = TransactionEventEmitter(debug=self.settings.debug)
        self.queue = TransactionQueue(self.settings)
        self.executor = TransactionExecutor(
            self.queue,
            provider,
            self.emitter,
            settings=self.settings,
        )
        self.provider = provider
        self._auto_started = False
        self._maybe_auto_start()

    def _maybe_auto_start(self) -> None:
        """Auto-start once, as soon as an event loop is available."""
        if self._auto_started or not self.settings.auto_start:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._auto_started = True
        self.executor.start()

    # ---------------------------
    # Submission
    # ---------------------------
    def add_transaction(
        self,
        intent: TransactionIntent,
        priority: int = 0,
        dependencies: Iterable[str] = (),
        max_retries: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        tx_id = self.queue.add(
            intent,
            priority=priority,
            dependencies=dependencies,
            max_retries=max_retries,
            metadata=metadata,
        )
        self._changed()
        return tx_id

    def add_batch(self, transactions: Sequence[Union[TransactionIntent, Dict[str, Any]]]) -> List[str]:
        """
        Add independent transactions.

        Each item is an intent or a dict with an "intent" key plus any of
        priority, dependencies, max_retries and metadata.
        """
        ids: List[str] = []
        for item in transactions:
            if isinstance(item, TransactionIntent):
                ids.append(self.add_transaction(item))
            else:
                options = dict(item)
                intent = options.pop("intent")
                ids.append(self.add_transaction(intent, **options))
        return ids

    def add_sequence(
        self,
        intents: Sequence[TransactionIntent],
        priority: int = 0,
        max_retries: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Add transactions that must run strictly one after another."""
        ids: List[str] = []
        for intent in intents:
            dependencies = [ids[-1]] if ids else []
            ids.append(
                self.add_transaction(
                    intent,
                    priority=priority,
                    dependencies=dependencies,
                    max_retries=max_retries,
                    metadata=metadata,
                )
            )
        return ids

    def validate_transaction(self, intent: TransactionIntent) -> TransactionValidation:
        return self.queue.validate_transaction(intent)

    # ---------------------------
    # Transaction control
    # ---------------------------
    def cancel_transaction(self, tx_id: str) -> bool:
        return self.executor.cancel_transaction(tx_id)

    def retry_transaction(self, tx_id: str) -> bool:
        return self.executor.retry_transaction(tx_id)

    def remove_transaction(self, tx_id: str) -> bool:
        removed = self.queue.remove(tx_id)
        if removed:
            self._changed()
        return removed

    def reorder_transaction(self, tx_id: str, new_priority: int) -> bool:
        reordered = self.queue.reorder(tx_id, new_priority)
        if reordered:
            self._changed()
        return reordered

    def _changed(self) -> None:
        self._maybe_auto_start()
        self.executor.wake()

    # ---------------------------
    # Queue control
    # ---------------------------
    def start(self) -> None:
        self._auto_started = True
        self.executor.start()

    def stop(self) -> None:
        self.executor.stop()

    def clear(self) -> None:
        self.queue.clear()
        self.executor.wake()

    async def close(self) -> None:
        await self.executor.close()

    @property
    def is_running(self) -> bool:
        return self.executor.is_running

    # ---------------------------
    # Status and monitoring
    # ---------------------------
    def get_transaction(self, tx_id: str) -> Optional[QueuedTransaction]:
        return self.queue.get(tx_id)

    def get_queued_transactions(self) -> List[QueuedTransaction]:
        return self.queue.get_pending()

    def get_executing_transactions(self) -> List[QueuedTransaction]:
        return self.executor.get_executing_transactions()

    def get_completed_transactions(self) -> List[QueuedTransaction]:
        return self.queue.get_completed()

    def get_statistics(self) -> QueueStatistics:
        return self.queue.get_statistics()

    def get_dependency_tree(self) -> Dict[str, List[str]]:
        return self.queue.get_dependency_tree()

    # ---------------------------
    # Events
    # ---------------------------
    def on(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        self.emitter.on(event_type, callback)

    def off(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        self.emitter.off(event_type, callback)

    def once(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        self.emitter.once(event_type, callback)

    async def wait_for_transaction(self, tx_id: str, timeout: Optional[float] = None) -> QueuedTransaction:
        """
        Wait until a transaction confirms.

        The transaction keeps running when the wait times out.

        Raises:
            KeyError: unknown transaction ID
            TransactionFailedError: it failed or was cancelled
            EventTimeoutError: it did not finish in time
        """
        self._maybe_auto_start()
        transaction = self.queue.get(tx_id)
        if transaction is None:
            raise KeyError(tx_id)

        if not transaction.is_final:
            event = await self.emitter.wait_for(
                TERMINAL_EVENTS,
                predicate=lambda e: e.transaction_id == tx_id,
                timeout=timeout,
            )
            transaction = event.transaction or self.queue.get(tx_id) or transaction

        if transaction.status != TransactionStatus.CONFIRMED:
            raise TransactionFailedError(transaction)
        return transaction

    async def wait_for_all_complete(self, timeout: Optional[float] = None) -> None:
        """
        Wait until nothing is pending or in flight.

        Raises:
            EventTimeoutError: the queue did not drain in time
        """
        self._maybe_auto_start()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        # Removals emit nothing, so re-check periodically as well
        recheck = self.settings.poll_interval_seconds * 10

        while not self.queue.is_empty():
            wait = recheck
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise EventTimeoutError("Timeout waiting for queue to empty")
                wait = min(wait, remaining)
            try:
                await self.emitter.wait_for(DRAIN_EVENTS, timeout=wait)
            except EventTimeoutError:
                continue
