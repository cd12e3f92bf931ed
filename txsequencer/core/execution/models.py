"""
Transaction scheduling models and types.
"""

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    PENDING = "pending"          # Waiting for dependencies or a free slot
    QUEUED = "queued"            # Picked by the run loop
    EXECUTING = "executing"      # Being prepared and sent
    CONFIRMING = "confirming"    # Sent, waiting for confirmations
    CONFIRMED = "confirmed"      # Successfully confirmed
    FAILED = "failed"            # Retries exhausted or permanent error
    CANCELLED = "cancelled"      # Cancelled before execution
    REPLACED = "replaced"        # Reserved for fee-bump replacement


PENDING_STATUSES = frozenset({TransactionStatus.PENDING, TransactionStatus.QUEUED})
IN_FLIGHT_STATUSES = frozenset({TransactionStatus.EXECUTING, TransactionStatus.CONFIRMING})
COMPLETED_STATUSES = frozenset({
    TransactionStatus.CONFIRMED,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})
# Dependencies in these states no longer block their dependents
SATISFIED_STATUSES = frozenset({TransactionStatus.CONFIRMED, TransactionStatus.CANCELLED})


def generate_tx_id() -> str:
    """Generate a unique transaction ID."""
    return f"tx_{secrets.token_hex(8)}"


@dataclass
class TransactionIntent:
    """A transaction the caller wants sent from the signer account."""
    to: str
    data: Optional[str] = None                  # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None             # Legacy pricing
    max_fee_per_gas: Optional[int] = None       # EIP-1559
    max_priority_fee_per_gas: Optional[int] = None
    nonce: Optional[int] = None
    chain_id: Optional[int] = None
    id: Optional[str] = None

    @property
    def has_fee_fields(self) -> bool:
        return self.gas_price is not None or self.max_fee_per_gas is not None

    def to_rpc_dict(self, from_address: Optional[str] = None) -> Dict[str, Any]:
        """Convert to a JSON-RPC call object."""
        tx: Dict[str, Any] = {"to": self.to}
        if from_address:
            tx["from"] = from_address
        if self.data:
            tx["data"] = self.data
        if self.value:
            tx["value"] = hex(self.value)
        if self.gas_limit is not None:
            tx["gas"] = hex(self.gas_limit)
        if self.max_fee_per_gas is not None:
            tx["maxFeePerGas"] = hex(self.max_fee_per_gas)
            tx["maxPriorityFeePerGas"] = hex(self.max_priority_fee_per_gas or 0)
        elif self.gas_price is not None:
            tx["gasPrice"] = hex(self.gas_price)
        if self.nonce is not None:
            tx["nonce"] = hex(self.nonce)
        if self.chain_id is not None:
            tx["chainId"] = hex(self.chain_id)
        return tx


@dataclass
class TransactionReceipt:
    """Receipt of a mined transaction."""
    tx_hash: str
    block_number: int
    block_hash: Optional[str] = None
    gas_used: int = 0
    effective_gas_price: int = 0
    status: int = 1                             # 1 = success, 0 = revert
    confirmations: int = 0

    @property
    def is_success(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, receipt: Dict[str, Any], confirmations: int = 0) -> "TransactionReceipt":
        return cls(
            tx_hash=receipt["transactionHash"],
            block_number=int(receipt["blockNumber"], 16),
            block_hash=receipt.get("blockHash"),
            gas_used=int(receipt.get("gasUsed", "0x0"), 16),
            effective_gas_price=int(receipt.get("effectiveGasPrice", "0x0"), 16),
            status=int(receipt.get("status", "0x1"), 16),
            confirmations=confirmations,
        )


@dataclass
class QueuedTransaction:
    """A scheduled unit of work and its execution state."""
    id: str
    intent: TransactionIntent
    status: TransactionStatus = TransactionStatus.PENDING
    priority: int = 0
    dependencies: Tuple[str, ...] = ()
    retry_count: int = 0
    max_retries: int = 3

    # Timing
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    executed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    # Outcome
    tx_hash: Optional[str] = None
    receipt: Optional[TransactionReceipt] = None
    error: Optional[BaseException] = None

    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    @property
    def is_final(self) -> bool:
        return self.status in COMPLETED_STATUSES

    def snapshot(self) -> "QueuedTransaction":
        """Copy that callers may hold without touching queue state."""
        return replace(
            self,
            intent=replace(self.intent),
            metadata=dict(self.metadata) if self.metadata is not None else None,
        )


class QueueStatistics(BaseModel):
    """Aggregate view of the queue for monitoring."""

    total_queued: int = 0
    total_executing: int = 0
    total_confirmed: int = 0
    total_failed: int = 0
    total_cancelled: int = 0
    average_confirmation_seconds: float = 0.0
    average_gas_used: int = 0
    success_rate: float = 0.0


class TransactionValidation(BaseModel):
    """Result of a pre-flight check on an intent."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    estimated_gas: Optional[int] = None
    estimated_cost: Optional[int] = None
