"""
Transaction executor.

Owns the run loop that drains the scheduling queue:
- Concurrency ceiling on in-flight transactions
- Nonce and gas preparation before every attempt
- Submission and confirmation through the provider
- Retry with backoff on transient failures
- Lifecycle notifications after every transition
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ...config import QueueSettings, settings as default_settings
from ...logging_config import transaction_context
from ...services.events.emitter import TransactionEventEmitter
from ...services.events.models import EventType, TransactionEvent
from ..recovery.errors import is_nonce_error, normalize_error
from ..recovery.strategies import RetryConfig, RetryPolicy
from .models import QueuedTransaction, QueueStatistics, TransactionIntent, TransactionStatus
from .nonce_manager import NonceLedger
from .queue import TransactionQueue

if TYPE_CHECKING:
    from ...providers.base import Provider


logger = logging.getLogger(__name__)

# Back-off after an unexpected error inside the run loop itself
LOOP_ERROR_BACKOFF_SECONDS = 1.0


class ExecutionError(Exception):
    """Base exception for execution errors."""
    pass


class ConfigurationError(ExecutionError):
    """The executor cannot run with the supplied collaborators."""
    pass


class TransactionExecutor:
    """
    Drains a TransactionQueue through a Provider.

    Responsibilities:
    - Pick eligible transactions in priority order
    - Keep at most max_concurrent transactions in flight
    - Prepare nonce, gas limit and gas price
    - Submit and wait for confirmation
    - Consult the retry policy on failure
    - Emit lifecycle events
    """

    def __init__(
        self,
        queue: TransactionQueue,
        provider: Optional["Provider"],
        emitter: Optional[TransactionEventEmitter] = None,
        settings: Optional[QueueSettings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        nonce_ledger: Optional[NonceLedger] = None,
    ):
        if provider is None:
            raise ConfigurationError("A provider is required to execute transactions")

        self.settings = settings or default_settings
        self.queue = queue
        self.provider = provider
        self.emitter = emitter or TransactionEventEmitter(debug=self.settings.debug)
        self.retry_policy = retry_policy or RetryPolicy(RetryConfig.from_settings(self.settings))
        self.nonce_ledger = nonce_ledger or NonceLedger()

        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Dict[str, asyncio.Task] = {}
        self._wake_event: Optional[asyncio.Event] = None
        self._idle_notified = False
        self._started_at: Optional[datetime] = None

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def start(self) -> None:
        """Start the run loop. Must be called with a running event loop."""
        if self._running:
            return
        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._idle_notified = False
        logger.info("Transaction executor starting (max_concurrent=%d)", self.settings.max_concurrent)
        self.emitter.emit(TransactionEvent(type=EventType.QUEUE_RESUMED))

        # A loop stopped but not yet exited picks the run flag back up
        if self._loop_task is not None and not self._loop_task.done():
            self.wake()
            return
        self._wake_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run_loop(), name="tx-executor-loop")

    def stop(self) -> None:
        """Stop picking new work; transactions already in flight complete."""
        if not self._running:
            return
        self._running = False
        logger.info("Transaction executor stopping with %d in flight", len(self._inflight))
        self.emitter.emit(TransactionEvent(type=EventType.QUEUE_PAUSED))
        self.wake()

    async def close(self) -> None:
        """Stop and wait for the loop and every in-flight transaction."""
        self.stop()
        if self._loop_task:
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        if self._inflight:
            await asyncio.gather(*self._inflight.values(), return_exceptions=True)

    def wake(self) -> None:
        """Make the run loop re-check the queue now."""
        if self._wake_event is not None:
            self._wake_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------------------------
    # Scheduling
    # ---------------------------
    async def _run_loop(self) -> None:
        while self._running:
            try:
                if len(self._inflight) >= self.settings.max_concurrent:
                    await self._wait()
                    continue

                transaction = self.queue.get_next(exclude=self._inflight.keys())
                if transaction is None:
                    if not self._inflight and not self._idle_notified:
                        self._idle_notified = True
                        self.emitter.emit(TransactionEvent(type=EventType.QUEUE_EMPTY))
                    await self._wait()
                    continue

                self._idle_notified = False
                self._dispatch(transaction)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Error processing queue: %s", exc, exc_info=True)
                await asyncio.sleep(LOOP_ERROR_BACKOFF_SECONDS)

    async def _wait(self) -> None:
        assert self._wake_event is not None
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=self.settings.poll_interval_seconds)
        except asyncio.TimeoutError:
            pass
        self._wake_event.clear()

    def _dispatch(self, transaction: QueuedTransaction) -> None:
        self.queue.update_status(transaction.id, TransactionStatus.QUEUED)
        self._emit(EventType.TRANSACTION_QUEUED, transaction.id)

        task = asyncio.create_task(
            self._execute_transaction(transaction.id),
            name=f"tx-execute-{transaction.id}",
        )
        self._inflight[transaction.id] = task
        task.add_done_callback(lambda t, tx_id=transaction.id: self._on_done(tx_id))

    def _on_done(self, tx_id: str) -> None:
        self._inflight.pop(tx_id, None)
        self.wake()

    # ---------------------------
    # Execution
    # ---------------------------
    async def _execute_transaction(self, tx_id: str) -> None:
        """Run one attempt; failures end in a retry or a terminal FAILED."""
        with transaction_context(tx_id):
            await self._attempt(tx_id)

    async def _attempt(self, tx_id: str) -> None:
        try:
            if not self.queue.update_status(tx_id, TransactionStatus.EXECUTING):
                logger.warning("Transaction %s left the queue before execution", tx_id)
                return
            transaction = self._emit(EventType.TRANSACTION_STARTED, tx_id)

            intent = await self._prepare_transaction(transaction)

            tx_hash = await self.provider.send_transaction(intent)
            self.queue.set_hash(tx_id, tx_hash)
            self._emit(EventType.TRANSACTION_SENT, tx_id, tx_hash=tx_hash)

            self.queue.update_status(tx_id, TransactionStatus.CONFIRMING)
            receipt = await self.provider.wait_for_transaction(
                tx_hash,
                self.settings.confirmation_blocks,
            )

            self.queue.set_receipt(tx_id, receipt)
            self.queue.update_status(tx_id, TransactionStatus.CONFIRMED)
            self._emit(EventType.TRANSACTION_CONFIRMED, tx_id, tx_hash=tx_hash, receipt=receipt)

        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            await self._handle_transaction_error(tx_id, normalize_error(exc))

    async def _prepare_transaction(self, transaction: QueuedTransaction) -> TransactionIntent:
        """Fill in nonce, gas limit and gas price; runs fresh on every attempt."""
        intent = replace(transaction.intent)

        if self.settings.nonce_manager and intent.nonce is None:
            intent.nonce = await self.nonce_ledger.reserve(
                self.provider.account,
                self.provider.get_transaction_count,
            )

        if intent.gas_limit is None:
            intent.gas_limit = await self.provider.estimate_gas(intent)

        if not intent.has_fee_fields:
            intent.gas_price = await self.provider.get_gas_price()

        logger.debug(
            "Prepared %s: nonce=%s gas=%s", transaction.id, intent.nonce, intent.gas_limit
        )
        return intent

    async def _handle_transaction_error(self, tx_id: str, error: BaseException) -> None:
        transaction = self.queue.get(tx_id)
        if transaction is None:
            logger.warning("Transaction %s failed after leaving the queue: %s", tx_id, error)
            return

        delay_ms: Optional[int] = None
        try:
            if self.retry_policy.should_retry(transaction, error):
                delay_ms = self.retry_policy.get_delay(transaction.retry_count + 1)
        except Exception as policy_error:  # noqa: BLE001
            logger.error(
                "Retry policy failed for %s: %s", tx_id, policy_error, exc_info=True
            )

        if delay_ms is not None:
            attempt = self.queue.increment_retry(tx_id)
            self.queue.update_status(tx_id, TransactionStatus.PENDING)
            logger.warning(
                f"Transaction {tx_id} attempt {attempt}/{transaction.max_retries} failed: {error}. "
                f"Retrying in {delay_ms}ms"
            )
            self._emit(EventType.TRANSACTION_RETRY, tx_id, error=error, attempt=attempt)

            await asyncio.sleep(delay_ms / 1000)

            if is_nonce_error(error):
                self.nonce_ledger.invalidate(self.provider.account)
        else:
            logger.error(f"Transaction {tx_id} failed: {error}")
            self.queue.set_error(tx_id, error)
            self.queue.update_status(tx_id, TransactionStatus.FAILED)
            self._emit(EventType.TRANSACTION_FAILED, tx_id, error=error)

    def _emit(self, event_type: EventType, tx_id: str, **kwargs: Any) -> Optional[QueuedTransaction]:
        transaction = self.queue.get(tx_id)
        self.emitter.emit(TransactionEvent(type=event_type, transaction=transaction, **kwargs))
        return transaction

    # ---------------------------
    # Manual controls
    # ---------------------------
    def cancel_transaction(self, tx_id: str) -> bool:
        """Cancel before execution; in-flight transactions cannot be cancelled."""
        if tx_id not in self.queue:
            return False
        if self.is_executing(tx_id):
            return False

        cancelled = self.queue.cancel(tx_id)
        if cancelled:
            self._emit(EventType.TRANSACTION_CANCELLED, tx_id)
            self.wake()
        return cancelled

    def retry_transaction(self, tx_id: str) -> bool:
        """Re-queue a FAILED transaction with a fresh retry budget."""
        reset = self.queue.reset_for_retry(tx_id)
        if reset:
            self.wake()
        return reset

    # ---------------------------
    # Introspection
    # ---------------------------
    def is_executing(self, tx_id: str) -> bool:
        return tx_id in self._inflight

    def get_executing_transactions(self) -> List[QueuedTransaction]:
        return [tx for tx in (self.queue.get(tx_id) for tx_id in self._inflight) if tx is not None]

    def get_queue_statistics(self) -> QueueStatistics:
        return self.queue.get_statistics()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": _iso(self._started_at),
            "inflight": len(self._inflight),
            "max_concurrent": self.settings.max_concurrent,
            "queue_size": len(self.queue),
            "executing": sorted(self._inflight),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.astimezone(timezone.utc).isoformat() if value else None
