"""
Scheduling queue for transactions.

Holds every submitted transaction, the dependency graph between them and the
priority-ordered execution order. The queue is the only owner of transaction
records: lookups return snapshots and all mutation goes through the methods
below.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Collection, Dict, Iterable, List, Optional, Set

from ...config import QueueSettings, settings as default_settings
from .models import (
    COMPLETED_STATUSES,
    IN_FLIGHT_STATUSES,
    PENDING_STATUSES,
    SATISFIED_STATUSES,
    QueuedTransaction,
    QueueStatistics,
    TransactionIntent,
    TransactionReceipt,
    TransactionStatus,
    TransactionValidation,
    generate_tx_id,
)


logger = logging.getLogger(__name__)


class TransactionValidationError(ValueError):
    """Submission rejected before it entered the queue."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class DependencyCycleError(TransactionValidationError):
    """Dependencies would make a set of transactions wait on each other."""


class InFlightTransactionError(RuntimeError):
    """Operation not allowed while the transaction is executing or confirming."""


class TransactionQueue:
    """
    Priority and dependency aware transaction queue.

    Ordering rules:
    - Higher priority runs first, ties keep arrival order
    - A transaction is eligible only when every known dependency is
      confirmed or cancelled; unknown dependency ids never block
    """

    def __init__(self, settings: Optional[QueueSettings] = None):
        self.settings = settings or default_settings
        self._transactions: Dict[str, QueuedTransaction] = {}
        self._execution_order: List[str] = []
        self._dependency_graph: Dict[str, Set[str]] = {}

    # ---------------------------
    # Submission
    # ---------------------------
    def add(
        self,
        intent: TransactionIntent,
        priority: int = 0,
        dependencies: Iterable[str] = (),
        max_retries: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Add a transaction and return its ID.

        Raises:
            TransactionValidationError: missing recipient or duplicate ID
            DependencyCycleError: the dependencies close a cycle
        """
        if not intent.to:
            raise TransactionValidationError('Transaction must have a "to" address')

        tx_id = intent.id or generate_tx_id()
        if tx_id in self._transactions:
            raise TransactionValidationError(f"Transaction with ID {tx_id} already exists")

        deps = tuple(dict.fromkeys(dependencies))
        if tx_id in deps or self._reaches(deps, tx_id):
            raise DependencyCycleError(
                f"Dependencies of {tx_id} form a cycle: {', '.join(deps)}"
            )

        intent = replace(intent, id=tx_id)
        transaction = QueuedTransaction(
            id=tx_id,
            intent=intent,
            priority=priority,
            dependencies=deps,
            max_retries=self.settings.default_max_retries if max_retries is None else max_retries,
            metadata=metadata,
        )

        self._transactions[tx_id] = transaction
        if deps:
            self._dependency_graph[tx_id] = set(deps)
        self._insert_into_execution_order(tx_id, priority)

        logger.debug("Queued %s (priority=%d, dependencies=%s)", tx_id, priority, list(deps))
        return tx_id

    def _insert_into_execution_order(self, tx_id: str, priority: int) -> None:
        insert_index = len(self._execution_order)
        for i, existing_id in enumerate(self._execution_order):
            existing = self._transactions.get(existing_id)
            if existing and existing.priority < priority:
                insert_index = i
                break
        self._execution_order.insert(insert_index, tx_id)

    def _reaches(self, start: Iterable[str], target: str) -> bool:
        """Whether target is reachable from start through the dependency graph."""
        stack = list(start)
        seen: Set[str] = set()
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependency_graph.get(current, ()))
        return False

    # ---------------------------
    # Scheduling
    # ---------------------------
    def get_next(self, exclude: Collection[str] = ()) -> Optional[QueuedTransaction]:
        """
        First eligible transaction in execution order, or None.

        None does not mean the queue is empty: transactions may be blocked
        on dependencies or already in flight.
        """
        for tx_id in self._execution_order:
            if tx_id in exclude:
                continue
            transaction = self._transactions.get(tx_id)
            if not transaction or transaction.status not in PENDING_STATUSES:
                continue
            if self._has_pending_dependencies(tx_id):
                continue
            return transaction.snapshot()
        return None

    def _has_pending_dependencies(self, tx_id: str) -> bool:
        for dep_id in self._dependency_graph.get(tx_id, ()):
            dep = self._transactions.get(dep_id)
            if dep is None:
                continue
            if dep.status not in SATISFIED_STATUSES:
                return True
        return False

    # ---------------------------
    # Mutation
    # ---------------------------
    def update_status(self, tx_id: str, status: TransactionStatus) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False

        transaction.status = status
        if status == TransactionStatus.EXECUTING:
            transaction.executed_at = datetime.now(timezone.utc)
        elif status == TransactionStatus.CONFIRMED:
            transaction.confirmed_at = datetime.now(timezone.utc)
        return True

    def set_hash(self, tx_id: str, tx_hash: str) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False
        transaction.tx_hash = tx_hash
        return True

    def set_receipt(self, tx_id: str, receipt: TransactionReceipt) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False
        transaction.receipt = receipt
        return True

    def set_error(self, tx_id: str, error: Optional[BaseException]) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False
        transaction.error = error
        return True

    def increment_retry(self, tx_id: str) -> int:
        """Bump the retry counter and return the new attempt number."""
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return 0
        transaction.retry_count += 1
        return transaction.retry_count

    def reset_for_retry(self, tx_id: str) -> bool:
        """Put a failed transaction back in the pool with a fresh retry budget."""
        transaction = self._transactions.get(tx_id)
        if not transaction or transaction.status != TransactionStatus.FAILED:
            return False
        transaction.retry_count = 0
        transaction.error = None
        transaction.status = TransactionStatus.PENDING
        return True

    def cancel(self, tx_id: str) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False
        if transaction.status == TransactionStatus.CONFIRMED:
            return False
        transaction.status = TransactionStatus.CANCELLED
        return True

    def remove(self, tx_id: str) -> bool:
        """
        Delete a transaction and its own dependency entry.

        Raises:
            InFlightTransactionError: the transaction is executing or confirming
        """
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False

        if transaction.status in IN_FLIGHT_STATUSES:
            raise InFlightTransactionError(
                f"Cannot remove transaction {tx_id} in status {transaction.status.value}"
            )

        del self._transactions[tx_id]
        self._execution_order = [i for i in self._execution_order if i != tx_id]
        # Dependents keep their edge; an unknown id counts as satisfied
        self._dependency_graph.pop(tx_id, None)
        return True

    def clear(self) -> None:
        """Drop every transaction that is not in flight."""
        kept = [
            tx_id for tx_id in self._execution_order
            if self._transactions[tx_id].status in IN_FLIGHT_STATUSES
        ]
        self._transactions = {tx_id: self._transactions[tx_id] for tx_id in kept}
        self._dependency_graph = {
            tx_id: deps for tx_id, deps in self._dependency_graph.items() if tx_id in kept
        }
        self._execution_order = kept

    def reorder(self, tx_id: str, new_priority: int) -> bool:
        transaction = self._transactions.get(tx_id)
        if not transaction:
            return False

        self._execution_order = [i for i in self._execution_order if i != tx_id]
        transaction.priority = new_priority
        self._insert_into_execution_order(tx_id, new_priority)
        return True

    # ---------------------------
    # Introspection
    # ---------------------------
    def get(self, tx_id: str) -> Optional[QueuedTransaction]:
        transaction = self._transactions.get(tx_id)
        return transaction.snapshot() if transaction else None

    def get_all(self) -> List[QueuedTransaction]:
        return [self._transactions[tx_id].snapshot() for tx_id in self._execution_order]

    def get_pending(self) -> List[QueuedTransaction]:
        return [tx for tx in self.get_all() if tx.status in PENDING_STATUSES]

    def get_executing(self) -> List[QueuedTransaction]:
        return [tx for tx in self.get_all() if tx.status in IN_FLIGHT_STATUSES]

    def get_completed(self) -> List[QueuedTransaction]:
        return [tx for tx in self.get_all() if tx.status in COMPLETED_STATUSES]

    def execution_order(self) -> List[str]:
        return list(self._execution_order)

    def size(self) -> int:
        return len(self._transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._transactions

    def is_empty(self) -> bool:
        """True when nothing is waiting or in flight."""
        return not any(
            tx.status in PENDING_STATUSES or tx.status in IN_FLIGHT_STATUSES
            for tx in self._transactions.values()
        )

    def get_statistics(self) -> QueueStatistics:
        all_txs = list(self._transactions.values())
        confirmed = [tx for tx in all_txs if tx.status == TransactionStatus.CONFIRMED]

        total_confirmation_time = 0.0
        total_gas_used = 0
        for tx in confirmed:
            if tx.confirmed_at:
                total_confirmation_time += (tx.confirmed_at - tx.created_at).total_seconds()
            if tx.receipt:
                total_gas_used += tx.receipt.gas_used

        return QueueStatistics(
            total_queued=sum(1 for tx in all_txs if tx.status in PENDING_STATUSES),
            total_executing=sum(1 for tx in all_txs if tx.status in IN_FLIGHT_STATUSES),
            total_confirmed=len(confirmed),
            total_failed=sum(1 for tx in all_txs if tx.status == TransactionStatus.FAILED),
            total_cancelled=sum(1 for tx in all_txs if tx.status == TransactionStatus.CANCELLED),
            average_confirmation_seconds=(
                total_confirmation_time / len(confirmed) if confirmed else 0.0
            ),
            average_gas_used=total_gas_used // len(confirmed) if confirmed else 0,
            success_rate=len(confirmed) / len(all_txs) if all_txs else 0.0,
        )

    def validate_transaction(self, intent: TransactionIntent) -> TransactionValidation:
        """Pre-flight check that never raises."""
        errors: List[str] = []
        warnings: List[str] = []

        if not intent.to:
            errors.append('Transaction must have a "to" address')

        if not intent.data and not intent.value:
            warnings.append("Transaction has no data or value")

        if intent.id and intent.id in self._transactions:
            errors.append(f"Transaction with ID {intent.id} already exists")

        estimated_cost = None
        if intent.gas_limit is not None and intent.gas_price is not None:
            estimated_cost = intent.gas_limit * intent.gas_price

        return TransactionValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            estimated_gas=intent.gas_limit,
            estimated_cost=estimated_cost,
        )

    def get_dependency_tree(self) -> Dict[str, List[str]]:
        return {
            tx_id: list(self._transactions[tx_id].dependencies)
            for tx_id in self._dependency_graph
        }
