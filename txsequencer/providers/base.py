from abc import ABC, abstractmethod
from typing import Optional

from ..core.execution.models import TransactionIntent, TransactionReceipt


class Provider(ABC):
    """Chain-interaction capabilities consumed by the transaction executor.

    Implementations raise on failure; the executor normalises and classifies
    whatever they raise.
    """

    name: str = "provider"
    account: str

    @abstractmethod
    async def send_transaction(self, intent: TransactionIntent) -> str:
        """Submit a prepared intent from the signer account, return its hash"""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Receipt for a hash, or None when not yet mined"""
        pass

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Pending transaction count (next nonce) for an address"""
        pass

    @abstractmethod
    async def estimate_gas(self, intent: TransactionIntent) -> int:
        """Gas limit estimate for an intent"""
        pass

    @abstractmethod
    async def get_gas_price(self) -> int:
        """Current gas price in wei"""
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in wei"""
        pass

    @abstractmethod
    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TransactionReceipt:
        """Wait until the hash has the given confirmations; raise on timeout or revert"""
        pass
