"""Shared fixtures: fast settings and an in-memory provider."""

from typing import Callable, List, Optional

import pytest

from txsequencer.config import QueueSettings, RetryStrategy
from txsequencer.core.execution.models import TransactionIntent, TransactionReceipt
from txsequencer.providers.base import Provider


SIGNER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"


class StubProvider(Provider):
    """Provider that confirms instantly unless told to fail."""

    name = "stub"

    def __init__(self, send_errors: Optional[List[Exception]] = None, chain_nonce: int = 0):
        self.account = SIGNER
        self.send_errors = list(send_errors or [])
        self.chain_nonce = chain_nonce
        self.sent: List[TransactionIntent] = []
        self.send_attempts = 0

    async def send_transaction(self, intent: TransactionIntent) -> str:
        self.send_attempts += 1
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(intent)
        return "0x" + format(len(self.sent), "064x")

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        return None

    async def get_transaction_count(self, address: str) -> int:
        return self.chain_nonce

    async def estimate_gas(self, intent: TransactionIntent) -> int:
        return 21000

    async def get_gas_price(self) -> int:
        return 1_000_000_000

    async def get_balance(self, address: str) -> int:
        return 10**18

    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TransactionReceipt:
        return TransactionReceipt(
            tx_hash=tx_hash,
            block_number=100 + len(self.sent),
            gas_used=21000,
            confirmations=confirmations,
        )

    @property
    def sent_ids(self) -> List[str]:
        return [intent.id for intent in self.sent]


@pytest.fixture
def fast_settings() -> QueueSettings:
    """Settings without retry delays and with a tight poll interval."""
    return QueueSettings(
        _env_file=None,
        retry_strategy=RetryStrategy.NONE,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


def build_intent(tx_id: Optional[str] = None, **kwargs) -> TransactionIntent:
    kwargs.setdefault("to", RECIPIENT)
    kwargs.setdefault("value", 1)
    return TransactionIntent(id=tx_id, **kwargs)


@pytest.fixture
def make_intent() -> Callable[..., TransactionIntent]:
    """Factory for intents sending 1 wei to a fixed recipient."""
    return build_intent


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    """Factory for stub providers with scripted send failures."""
    return StubProvider
