"""
Transaction Scheduling and Execution Layer

- TransactionQueue: priority and dependency aware queue of transactions
- TransactionExecutor: run loop that prepares, sends and confirms them
- NonceLedger: per-account nonce tracking for concurrent sends

Usage:
    from txsequencer.core.execution import (
        TransactionExecutor,
        TransactionIntent,
        TransactionQueue,
    )

    queue = TransactionQueue()
    queue.add(TransactionIntent(to="0x...", value=10**16), priority=5)

    executor = TransactionExecutor(queue, provider)
    executor.start()
"""

from .models import (
    TransactionStatus,
    TransactionIntent,
    TransactionReceipt,
    QueuedTransaction,
    QueueStatistics,
    TransactionValidation,
    generate_tx_id,
)

from .queue import (
    TransactionQueue,
    TransactionValidationError,
    DependencyCycleError,
    InFlightTransactionError,
)

from .nonce_manager import (
    NonceLedger,
    NonceState,
)

from .executor import (
    TransactionExecutor,
    ExecutionError,
    ConfigurationError,
)

__all__ = [
    # Models
    "TransactionStatus",
    "TransactionIntent",
    "TransactionReceipt",
    "QueuedTransaction",
    "QueueStatistics",
    "TransactionValidation",
    "generate_tx_id",
    # Queue
    "TransactionQueue",
    "TransactionValidationError",
    "DependencyCycleError",
    "InFlightTransactionError",
    # Nonce Ledger
    "NonceLedger",
    "NonceState",
    # Executor
    "TransactionExecutor",
    "ExecutionError",
    "ConfigurationError",
]
