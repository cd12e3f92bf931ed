"""
Error Recovery Module

Provides error classification and the retry policy used by the
transaction executor.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    ClassifiedError,
    RecoverableError,
    UnrecoverableError,
    NetworkError,
    RateLimitError,
    ConfirmationTimeoutError,
    InsufficientFundsError,
    TransactionRevertedError,
    ProviderError,
    classify_error,
    normalize_error,
    is_nonce_error,
)
from .strategies import RetryConfig, RetryPolicy

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "ClassifiedError",
    "RecoverableError",
    "UnrecoverableError",
    "NetworkError",
    "RateLimitError",
    "ConfirmationTimeoutError",
    "InsufficientFundsError",
    "TransactionRevertedError",
    "ProviderError",
    "classify_error",
    "normalize_error",
    "is_nonce_error",
    # Policy
    "RetryConfig",
    "RetryPolicy",
]
