"""
Failure taxonomy for transaction execution.

Every failure is resolved to an ErrorContext whose ``recoverable`` flag is
what the retry policy acts on. Typed errors carry their context; anything
else is matched on its message, and unmatched messages are terminal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Why a send or confirmation failed."""

    # Transient
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NONCE = "nonce"                      # nonce too low / already known
    UNDERPRICED = "underpriced"          # replacement underpriced / gas price too low
    CHAIN_PENDING = "chain_pending"      # node still holds a pending/queued tx

    # Permanent
    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_REVERTED = "transaction_reverted"

    PROVIDER = "provider"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Classification result consumed by the retry policy."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    suggested_action: Optional[str] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class ClassifiedError(Exception):
    """
    Exception that knows its own classification.

    Subclasses set ``category``, ``recoverable`` and ``suggested_action`` as
    class attributes; instances build their context from them.
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    suggested_action: Optional[str] = None
    default_message: str = "Transaction error"

    def __init__(
        self,
        message: Optional[str] = None,
        tx_hash: Optional[str] = None,
        **details: Any,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.context = ErrorContext(
            category=self.category,
            recoverable=self.recoverable,
            suggested_action=self.suggested_action,
            tx_hash=tx_hash,
            details={k: v for k, v in details.items() if v is not None},
        )


class RecoverableError(ClassifiedError):
    """Transient failure; the transaction is retried while budget remains."""

    recoverable = True


class UnrecoverableError(ClassifiedError):
    """Permanent failure; the transaction goes straight to FAILED."""

    recoverable = False


class NetworkError(RecoverableError):
    category = ErrorCategory.NETWORK
    suggested_action = "Retry with backoff"
    default_message = "Network error"


class RateLimitError(RecoverableError):
    category = ErrorCategory.RATE_LIMIT
    suggested_action = "Wait before retrying"
    default_message = "Rate limit exceeded"


class ConfirmationTimeoutError(RecoverableError):
    """Receipt did not reach the requested depth in time."""

    category = ErrorCategory.TIMEOUT
    suggested_action = "Check the hash before resubmitting"
    default_message = "Confirmation timeout"


class InsufficientFundsError(UnrecoverableError):
    category = ErrorCategory.INSUFFICIENT_FUNDS
    suggested_action = "Fund the signer or lower the value"
    default_message = "Insufficient funds"

    def __init__(
        self,
        message: Optional[str] = None,
        required: Optional[int] = None,
        available: Optional[int] = None,
    ):
        super().__init__(message, required=required, available=available)


class TransactionRevertedError(UnrecoverableError):
    """Mined with status 0."""

    category = ErrorCategory.TRANSACTION_REVERTED
    suggested_action = "Inspect the call data and contract state"
    default_message = "Transaction reverted"

    def __init__(
        self,
        message: Optional[str] = None,
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message, tx_hash=tx_hash, revert_reason=reason)


class ProviderError(Exception):
    """
    Error reported by a provider, normalised to message, code and data.

    Classification happens on the message, so a provider error whose text
    names a transient condition is retried like any other.
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


_PERMANENT_PATTERNS = (
    (ErrorCategory.USER_REJECTED, ("user rejected", "user denied")),
    (ErrorCategory.INSUFFICIENT_FUNDS, ("insufficient funds", "insufficient balance")),
    (ErrorCategory.TRANSACTION_REVERTED, ("execution reverted", "revert")),
)

_TRANSIENT_PATTERNS = (
    (ErrorCategory.NETWORK, ("network", "connection")),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "429")),
    (ErrorCategory.NONCE, ("nonce too low", "already known")),
    (ErrorCategory.UNDERPRICED, ("replacement transaction underpriced", "gas price too low")),
    (ErrorCategory.CHAIN_PENDING, ("pending", "queued")),
)


def normalize_error(error: Any) -> BaseException:
    """Turn whatever a provider raised into an exception instance."""
    if isinstance(error, BaseException):
        return error
    if isinstance(error, str):
        return ProviderError(error)
    message = getattr(error, "message", None)
    if message:
        return ProviderError(str(message))
    return ProviderError("Unknown error occurred")


def classify_error(error: BaseException) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already classified errors keep their own context. Everything else is
    matched on its lowercased message, permanent patterns first.
    """
    if isinstance(error, ClassifiedError):
        return error.context

    message = str(error).lower()

    for category, patterns in _PERMANENT_PATTERNS:
        if any(p in message for p in patterns):
            return ErrorContext(category=category, recoverable=False)

    for category, patterns in _TRANSIENT_PATTERNS:
        if any(p in message for p in patterns):
            return ErrorContext(category=category, recoverable=True)

    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=False,
        suggested_action="Inspect the error and retry manually",
    )


def is_nonce_error(error: BaseException) -> bool:
    return "nonce" in str(error).lower()
