"""
Lifecycle Notifications

Typed events emitted by the transaction executor and the emitter that
delivers them to subscribers.

Usage:
    from txsequencer.services.events import EventType, TransactionEventEmitter

    emitter = TransactionEventEmitter(debug=True)
    emitter.on(EventType.TRANSACTION_CONFIRMED, lambda event: print(event.tx_hash))
    event = await emitter.wait_for(EventType.QUEUE_EMPTY, timeout=30)
"""

from .models import (
    EventType,
    TransactionEvent,
    EventTimeoutError,
    EventCallback,
    EventPredicate,
    TERMINAL_EVENTS,
)
from .emitter import TransactionEventEmitter

__all__ = [
    "EventType",
    "TransactionEvent",
    "EventTimeoutError",
    "EventCallback",
    "EventPredicate",
    "TERMINAL_EVENTS",
    "TransactionEventEmitter",
]
