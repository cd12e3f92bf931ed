"""
Transaction Event Emitter

Callback registry for lifecycle notifications. Emission is synchronous and
happens right after each state transition; observer failures are logged and
never reach the executor.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from .models import (
    EventCallback,
    EventPredicate,
    EventTimeoutError,
    EventType,
    TransactionEvent,
)

logger = logging.getLogger(__name__)


class TransactionEventEmitter:
    """
    Lifecycle notifier.

    Supports:
    - on / off / once subscriptions per event type
    - awaiting a filtered occurrence with an optional timeout
    - verbose logging of every emission when debug is enabled
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._callbacks: Dict[EventType, List[EventCallback]] = {}
        self._once: Dict[EventType, List[EventCallback]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        """Register a callback for an event type."""
        self._callbacks.setdefault(EventType(event_type), []).append(callback)

    def once(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        """Register a callback that fires at most once."""
        self._once.setdefault(EventType(event_type), []).append(callback)

    def off(self, event_type: Union[EventType, str], callback: EventCallback) -> None:
        """Unregister a callback."""
        event_type = EventType(event_type)
        for registry in (self._callbacks, self._once):
            if event_type in registry:
                registry[event_type] = [cb for cb in registry[event_type] if cb != callback]

    def listener_count(self, event_type: Union[EventType, str]) -> int:
        event_type = EventType(event_type)
        return len(self._callbacks.get(event_type, [])) + len(self._once.get(event_type, []))

    def emit(self, event: TransactionEvent) -> None:
        self._log(event)

        callbacks = list(self._callbacks.get(event.type, []))
        callbacks.extend(self._once.pop(event.type, []))

        for callback in callbacks:
            try:
                result = callback(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Callback error on %s: %s", event.type.value, exc, exc_info=True)
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event)

    def _schedule(self, awaitable: Any, event: TransactionEvent) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning("Async callback error on %s: %s", event.type.value, t.exception())

        task.add_done_callback(_done)

    def _log(self, event: TransactionEvent) -> None:
        level = logging.INFO if self.debug else logging.DEBUG
        if not logger.isEnabledFor(level):
            return
        details: Dict[str, Any] = {}
        if event.transaction_id:
            details["id"] = event.transaction_id
        if event.tx_hash:
            details["hash"] = event.tx_hash
        if event.receipt:
            details["block_number"] = event.receipt.block_number
        if event.error is not None:
            details["error"] = str(event.error)
        if event.attempt is not None:
            details["attempt"] = event.attempt
        logger.log(level, "%s %s", event.type.value, details)

    async def wait_for(
        self,
        event_types: Union[EventType, str, Iterable[Union[EventType, str]]],
        predicate: Optional[EventPredicate] = None,
        timeout: Optional[float] = None,
    ) -> TransactionEvent:
        """
        Wait for the next matching event.

        Args:
            event_types: One event type or several
            predicate: Optional filter on the event
            timeout: Seconds to wait; None waits forever

        Raises:
            EventTimeoutError: nothing matched in time
        """
        if isinstance(event_types, (EventType, str)):
            types = [EventType(event_types)]
        else:
            types = [EventType(t) for t in event_types]

        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def handler(event: TransactionEvent) -> None:
            if future.done():
                return
            if predicate is None or predicate(event):
                future.set_result(event)

        for event_type in types:
            self.on(event_type, handler)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as exc:
            names = ", ".join(t.value for t in types)
            raise EventTimeoutError(f"Timeout waiting for event: {names}") from exc
        finally:
            for event_type in types:
                self.off(event_type, handler)
