"""
txsequencer

Priority and dependency aware transaction queue for a single EVM signer,
with bounded concurrency, automatic nonce/gas preparation and retry with
backoff.

Usage:
    from txsequencer import JsonRpcProvider, TransactionIntent, TransactionQueueService

    provider = JsonRpcProvider(account="0x...", rpc_url="http://localhost:8545")
    service = TransactionQueueService(provider, max_concurrent=2)

    approve_id, swap_id = service.add_sequence([approve_intent, swap_intent])
    await service.wait_for_transaction(swap_id, timeout=120)
"""

from .config import QueueSettings, RetryStrategy, settings
from .core.execution import (
    TransactionStatus,
    TransactionIntent,
    TransactionReceipt,
    QueuedTransaction,
    QueueStatistics,
    TransactionValidation,
    TransactionQueue,
    TransactionValidationError,
    DependencyCycleError,
    InFlightTransactionError,
    NonceLedger,
    TransactionExecutor,
    ExecutionError,
    ConfigurationError,
)
from .core.recovery import RetryConfig, RetryPolicy, classify_error
from .providers import JsonRpcProvider, Provider
from .services.events import (
    EventType,
    TransactionEvent,
    EventTimeoutError,
    TransactionEventEmitter,
)
from .services.transaction_service import TransactionFailedError, TransactionQueueService

__version__ = "0.1.0"

__all__ = [
    "QueueSettings",
    "RetryStrategy",
    "settings",
    "TransactionStatus",
    "TransactionIntent",
    "TransactionReceipt",
    "QueuedTransaction",
    "QueueStatistics",
    "TransactionValidation",
    "TransactionQueue",
    "TransactionValidationError",
    "DependencyCycleError",
    "InFlightTransactionError",
    "NonceLedger",
    "TransactionExecutor",
    "ExecutionError",
    "ConfigurationError",
    "RetryConfig",
    "RetryPolicy",
    "classify_error",
    "JsonRpcProvider",
    "Provider",
    "EventType",
    "TransactionEvent",
    "EventTimeoutError",
    "TransactionEventEmitter",
    "TransactionFailedError",
    "TransactionQueueService",
]
