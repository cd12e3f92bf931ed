"""
Tests for the Nonce Ledger
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from txsequencer.core.execution import NonceLedger


ACCOUNT = "0xAbCdEf0000000000000000000000000000000001"


class TestNonceLedger:
    """Tests for nonce reservation."""

    @pytest.mark.asyncio
    async def test_first_reservation_uses_chain_nonce(self):
        """Test that the first nonce comes from the chain."""
        ledger = NonceLedger()
        fetch = AsyncMock(return_value=7)

        assert await ledger.reserve(ACCOUNT, fetch) == 7
        assert ledger.peek(ACCOUNT) == 8
        fetch.assert_awaited_once_with(ACCOUNT)

    @pytest.mark.asyncio
    async def test_reservations_advance_past_stale_chain(self):
        """Test that unmined reservations are not handed out twice."""
        ledger = NonceLedger()
        fetch = AsyncMock(return_value=7)

        nonces = [await ledger.reserve(ACCOUNT, fetch) for _ in range(3)]

        assert nonces == [7, 8, 9]

    @pytest.mark.asyncio
    async def test_chain_ahead_of_ledger_wins(self):
        """Test that a higher chain count overrides the tracked nonce."""
        ledger = NonceLedger()
        await ledger.reserve(ACCOUNT, AsyncMock(return_value=1))

        assert await ledger.reserve(ACCOUNT, AsyncMock(return_value=10)) == 10

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_distinct(self):
        """Test that concurrent reservations never collide."""
        ledger = NonceLedger()

        async def slow_fetch(address):
            await asyncio.sleep(0)
            return 0

        nonces = await asyncio.gather(*(ledger.reserve(ACCOUNT, slow_fetch) for _ in range(5)))

        assert sorted(nonces) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_invalidate_rereads_chain(self):
        """Test that invalidation falls back to chain state."""
        ledger = NonceLedger()
        fetch = AsyncMock(return_value=3)
        await ledger.reserve(ACCOUNT, fetch)

        ledger.invalidate(ACCOUNT)

        assert ledger.get_state(ACCOUNT) is None
        assert await ledger.reserve(ACCOUNT, fetch) == 3

    @pytest.mark.asyncio
    async def test_addresses_are_case_insensitive(self):
        """Test that checksummed and lowercase addresses share state."""
        ledger = NonceLedger()
        await ledger.reserve(ACCOUNT, AsyncMock(return_value=4))

        state = ledger.get_state(ACCOUNT.lower())
        assert state.next_nonce == 5
        assert state.last_chain_nonce == 4

    def test_clear(self):
        """Test that clear forgets all accounts."""
        ledger = NonceLedger()
        ledger.clear()
        assert ledger.peek(ACCOUNT) is None
