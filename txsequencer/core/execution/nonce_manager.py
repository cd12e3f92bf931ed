"""
Nonce management for concurrent transactions.

Tracks the next nonce per signer account so that transactions prepared while
earlier ones are still unmined do not reuse a sequence number.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional


@dataclass
class NonceState:
    """Tracks nonce state for one account."""
    address: str
    next_nonce: int                             # Next nonce to hand out
    last_chain_nonce: int                       # Pending count last read from chain
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NonceLedger:
    """
    Per-account nonce ledger owned by a single executor.

    Features:
    - Assigns max(chain pending count, tracked next nonce)
    - Serialises read-then-write per account with an asyncio lock
    - Entries are dropped after nonce errors so the next preparation
      re-reads chain state
    """

    def __init__(self):
        self._states: Dict[str, NonceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, address: str) -> str:
        return address.lower()

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def reserve(
        self,
        address: str,
        fetch_chain_nonce: Callable[[str], Awaitable[int]],
    ) -> int:
        """
        Reserve the next nonce for an address.

        Args:
            address: The signer address
            fetch_chain_nonce: Reads the pending transaction count on chain

        Returns:
            The nonce to use; the ledger now points past it
        """
        key = self._get_key(address)

        async with self._get_lock(key):
            chain_nonce = await fetch_chain_nonce(address)
            state = self._states.get(key)
            tracked = state.next_nonce if state else chain_nonce
            nonce = max(chain_nonce, tracked)

            self._states[key] = NonceState(
                address=key,
                next_nonce=nonce + 1,
                last_chain_nonce=chain_nonce,
            )
            return nonce

    def invalidate(self, address: str) -> None:
        """Forget the tracked nonce for an address."""
        self._states.pop(self._get_key(address), None)

    def get_state(self, address: str) -> Optional[NonceState]:
        return self._states.get(self._get_key(address))

    def peek(self, address: str) -> Optional[int]:
        state = self.get_state(address)
        return state.next_nonce if state else None

    def clear(self) -> None:
        self._states.clear()
