"""
Tests for the Transaction Queue Service

End-to-end scenarios through the public submission surface.
"""

import pytest

from txsequencer.core.execution import InFlightTransactionError, TransactionStatus
from txsequencer.core.recovery.errors import NetworkError
from txsequencer.services.events import EventTimeoutError, EventType
from txsequencer.services.transaction_service import (
    TransactionFailedError,
    TransactionQueueService,
)


# =============================================================================
# Fixtures
# =============================================================================

def record_events(service):
    events = []
    for event_type in EventType:
        service.on(event_type, events.append)
    return events


# =============================================================================
# Construction Tests
# =============================================================================

class TestConstruction:
    """Tests for settings and auto-start."""

    def test_overrides_apply_on_top_of_settings(self, provider, fast_settings):
        """Test that keyword overrides replace individual settings."""
        service = TransactionQueueService(provider, settings=fast_settings, max_concurrent=4)

        assert service.settings.max_concurrent == 4
        assert service.settings.poll_interval_seconds == fast_settings.poll_interval_seconds
        assert fast_settings.max_concurrent == 1

    def test_no_auto_start_without_event_loop(self, provider, fast_settings, make_intent):
        """Test that submission outside a loop leaves the executor stopped."""
        service = TransactionQueueService(provider, settings=fast_settings)
        service.add_transaction(make_intent())

        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_auto_start_inside_event_loop(self, provider, fast_settings):
        """Test that the executor starts on construction inside a loop."""
        service = TransactionQueueService(provider, settings=fast_settings)

        assert service.is_running is True
        await service.close()

    @pytest.mark.asyncio
    async def test_auto_start_disabled(self, provider, fast_settings, make_intent):
        """Test that auto_start=False requires an explicit start."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        service.add_transaction(make_intent())

        assert service.is_running is False

        service.start()
        assert service.is_running is True
        await service.close()


# =============================================================================
# End-to-End Tests
# =============================================================================

class TestEndToEnd:
    """Scenarios that run transactions to completion."""

    @pytest.mark.asyncio
    async def test_priority_order(self, provider, fast_settings, make_intent):
        """Test that priorities 1, 10, 5 confirm as 10, 5, 1."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        events = record_events(service)

        low = service.add_transaction(make_intent(), priority=1)
        high = service.add_transaction(make_intent(), priority=10)
        mid = service.add_transaction(make_intent(), priority=5)

        service.start()
        await service.wait_for_all_complete(timeout=2.0)
        await service.close()

        confirmed = [e.transaction_id for e in events if e.type == EventType.TRANSACTION_CONFIRMED]
        assert confirmed == [high, mid, low]
        assert service.get_statistics().total_confirmed == 3
        assert service.get_statistics().success_rate == 1.0

    @pytest.mark.asyncio
    async def test_sequence_with_transient_failure(self, make_provider, fast_settings, make_intent):
        """Test that A retries once and B starts only after A confirms."""
        provider = make_provider(send_errors=[NetworkError("network error")])
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        events = record_events(service)

        a_id, b_id = service.add_sequence([make_intent(), make_intent()])

        service.start()
        await service.wait_for_all_complete(timeout=2.0)
        await service.close()

        retries = [e for e in events if e.type == EventType.TRANSACTION_RETRY]
        assert [e.transaction_id for e in retries] == [a_id]
        assert retries[0].attempt == 1

        order = [(e.type, e.transaction_id) for e in events]
        assert order.index((EventType.TRANSACTION_STARTED, b_id)) > order.index(
            (EventType.TRANSACTION_CONFIRMED, a_id)
        )
        assert service.get_transaction(b_id).status == TransactionStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_wait_for_transaction_returns_confirmed(self, provider, fast_settings, make_intent):
        """Test that waiting on a transaction yields its final record."""
        service = TransactionQueueService(provider, settings=fast_settings)
        tx_id = service.add_transaction(make_intent())

        tx = await service.wait_for_transaction(tx_id, timeout=2.0)
        await service.close()

        assert tx.id == tx_id
        assert tx.status == TransactionStatus.CONFIRMED
        assert tx.receipt is not None

    @pytest.mark.asyncio
    async def test_wait_for_already_confirmed(self, provider, fast_settings, make_intent):
        """Test that waiting after confirmation returns immediately."""
        service = TransactionQueueService(provider, settings=fast_settings)
        tx_id = service.add_transaction(make_intent())
        await service.wait_for_transaction(tx_id, timeout=2.0)

        tx = await service.wait_for_transaction(tx_id, timeout=0.01)
        await service.close()

        assert tx.status == TransactionStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_wait_for_failed_transaction_raises(self, make_provider, fast_settings, make_intent):
        """Test that a failed transaction surfaces as TransactionFailedError."""
        provider = make_provider(send_errors=[NetworkError() for _ in range(5)])
        service = TransactionQueueService(provider, settings=fast_settings, default_max_retries=1)
        tx_id = service.add_transaction(make_intent())

        with pytest.raises(TransactionFailedError) as exc_info:
            await service.wait_for_transaction(tx_id, timeout=2.0)
        await service.close()

        assert exc_info.value.transaction.status == TransactionStatus.FAILED
        assert exc_info.value.transaction.retry_count == 1

    @pytest.mark.asyncio
    async def test_wait_for_unknown_transaction(self, provider, fast_settings):
        """Test that waiting on an unknown ID raises KeyError."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)

        with pytest.raises(KeyError):
            await service.wait_for_transaction("missing", timeout=0.01)

    @pytest.mark.asyncio
    async def test_wait_for_transaction_timeout(self, provider, fast_settings, make_intent):
        """Test that a stalled transaction times out and stays queued."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        tx_id = service.add_transaction(make_intent())

        with pytest.raises(EventTimeoutError):
            await service.wait_for_transaction(tx_id, timeout=0.05)

        assert service.get_transaction(tx_id).status == TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_wait_for_all_complete_timeout(self, provider, fast_settings, make_intent):
        """Test that a queue that never drains times out."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        service.add_transaction(make_intent())

        with pytest.raises(EventTimeoutError):
            await service.wait_for_all_complete(timeout=0.05)

    @pytest.mark.asyncio
    async def test_wait_for_all_complete_when_empty(self, provider, fast_settings):
        """Test that an empty queue is complete immediately."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)

        await service.wait_for_all_complete(timeout=0.01)

    @pytest.mark.asyncio
    async def test_cancelled_dependency_unblocks_sequence(self, provider, fast_settings, make_intent):
        """Test that cancelling the head of a sequence lets the rest run."""
        service = TransactionQueueService(provider, settings=fast_settings, auto_start=False)
        a_id, b_id = service.add_sequence([make_intent(), make_intent()])

        assert service.cancel_transaction(a_id) is True
        service.start()
        await service.wait_for_all_complete(timeout=2.0)
        await service.close()

        assert service.get_transaction(b_id).status == TransactionStatus.CONFIRMED
        assert [tx.id for tx in service.get_completed_transactions()] == [a_id, b_id]

    @pytest.mark.asyncio
    async def test_manual_retry(self, make_provider, fast_settings, make_intent):
        """Test that a failed transaction can be retried through the service."""
        provider = make_provider(send_errors=[ValueError("unexpected")])
        service = TransactionQueueService(provider, settings=fast_settings)
        tx_id = service.add_transaction(make_intent())

        with pytest.raises(TransactionFailedError):
            await service.wait_for_transaction(tx_id, timeout=2.0)

        assert service.retry_transaction(tx_id) is True
        tx = await service.wait_for_transaction(tx_id, timeout=2.0)
        await service.close()

        assert tx.status == TransactionStatus.CONFIRMED


# =============================================================================
# Submission and Control Tests
# =============================================================================

class TestSubmission:
    """Tests for batch and sequence submission and queue control."""

    def test_add_batch_accepts_intents_and_options(self, provider, fast_settings, make_intent):
        """Test that batch items may carry their own options."""
        service = TransactionQueueService(provider, settings=fast_settings)

        ids = service.add_batch([
            make_intent("plain"),
            {"intent": make_intent("urgent"), "priority": 9, "metadata": {"kind": "swap"}},
        ])

        assert ids == ["plain", "urgent"]
        assert [tx.id for tx in service.get_queued_transactions()] == ["urgent", "plain"]
        assert service.get_transaction("urgent").metadata == {"kind": "swap"}
        assert service.get_dependency_tree() == {}

    def test_add_sequence_chains_dependencies(self, provider, fast_settings, make_intent):
        """Test that each transaction depends on the previous one."""
        service = TransactionQueueService(provider, settings=fast_settings)

        ids = service.add_sequence([make_intent(), make_intent(), make_intent()], priority=2)

        assert service.get_dependency_tree() == {ids[1]: [ids[0]], ids[2]: [ids[1]]}
        assert all(service.get_transaction(i).priority == 2 for i in ids)

    def test_remove_and_reorder(self, provider, fast_settings, make_intent):
        """Test removal and reprioritisation of queued transactions."""
        service = TransactionQueueService(provider, settings=fast_settings)
        service.add_transaction(make_intent("a"), priority=5)
        service.add_transaction(make_intent("b"), priority=1)

        assert service.reorder_transaction("b", 10) is True
        assert [tx.id for tx in service.get_queued_transactions()] == ["b", "a"]

        assert service.remove_transaction("a") is True
        assert service.remove_transaction("a") is False
        assert service.get_transaction("a") is None

    def test_remove_in_flight_raises(self, provider, fast_settings, make_intent):
        """Test that removal of an executing transaction is refused."""
        service = TransactionQueueService(provider, settings=fast_settings)
        service.add_transaction(make_intent("a"))
        service.queue.update_status("a", TransactionStatus.EXECUTING)

        with pytest.raises(InFlightTransactionError):
            service.remove_transaction("a")

    def test_clear(self, provider, fast_settings, make_intent):
        """Test that clear empties the queue."""
        service = TransactionQueueService(provider, settings=fast_settings)
        service.add_batch([make_intent(), make_intent()])

        service.clear()

        assert service.get_queued_transactions() == []
        assert service.get_statistics().total_queued == 0

    def test_validate_transaction(self, provider, fast_settings, make_intent):
        """Test that validation is exposed on the service."""
        service = TransactionQueueService(provider, settings=fast_settings)

        assert service.validate_transaction(make_intent(to="")).is_valid is False

    def test_once_and_off(self, provider, fast_settings, make_intent):
        """Test subscription management through the service."""
        service = TransactionQueueService(provider, settings=fast_settings)
        seen = []
        service.once(EventType.TRANSACTION_CANCELLED, seen.append)
        persistent = []
        service.on("transaction:cancelled", persistent.append)
        service.off("transaction:cancelled", persistent.append)

        a_id, b_id = service.add_batch([make_intent(), make_intent()])
        service.cancel_transaction(a_id)
        service.cancel_transaction(b_id)

        assert [e.transaction_id for e in seen] == [a_id]
        assert persistent == []
