"""
JSON-RPC provider.

Talks to a node that holds the signer key, so transactions are submitted
with eth_sendTransaction and signing stays on the node.
"""

import asyncio
import logging
import time
from typing import Any, List, Optional

import httpx

from ..config import QueueSettings, settings as default_settings
from ..core.execution.models import TransactionIntent, TransactionReceipt
from ..core.recovery.errors import (
    ConfirmationTimeoutError,
    NetworkError,
    ProviderError,
    RateLimitError,
    TransactionRevertedError,
)
from .base import Provider


logger = logging.getLogger(__name__)

# Safety margin applied to gas estimates, in percent
GAS_ESTIMATE_BUFFER_PERCENT = 20


class JsonRpcProvider(Provider):
    """
    Provider backed by an Ethereum JSON-RPC endpoint.

    Responsibilities:
    - Submit transactions for the node-managed account
    - Estimate gas and fetch gas prices
    - Poll receipts until the requested confirmation depth
    - Normalise transport and RPC failures into the recovery error taxonomy
    """

    name = "json-rpc"

    def __init__(
        self,
        account: str,
        rpc_url: Optional[str] = None,
        settings: Optional[QueueSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or default_settings
        self.account = account
        self.rpc_url = rpc_url or self.settings.rpc_url
        if not self.rpc_url:
            raise ValueError("No RPC URL configured")
        self._client = client or httpx.AsyncClient(timeout=float(self.settings.request_timeout_seconds))
        self._request_id = 0

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the node."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkError(f"RPC timeout calling {method}: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"RPC connection error calling {method}: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"RPC rate limit exceeded calling {method}")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"RPC HTTP error {response.status_code} calling {method}",
                code=response.status_code,
            ) from e

        result = response.json()
        if "error" in result:
            error = result["error"] or {}
            raise ProviderError(
                str(error.get("message", error)),
                code=error.get("code"),
                data=error.get("data"),
            )

        return result.get("result")

    async def send_transaction(self, intent: TransactionIntent) -> str:
        tx_hash = await self._rpc_call(
            "eth_sendTransaction",
            [intent.to_rpc_dict(from_address=self.account)],
        )
        logger.info(f"Transaction submitted: {tx_hash}")
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None
        return TransactionReceipt.from_rpc(receipt)

    async def get_transaction_count(self, address: str) -> int:
        count = await self._rpc_call("eth_getTransactionCount", [address, "pending"])
        return int(count, 16)

    async def estimate_gas(self, intent: TransactionIntent) -> int:
        call_obj = intent.to_rpc_dict(from_address=self.account)
        call_obj.pop("nonce", None)
        gas_hex = await self._rpc_call("eth_estimateGas", [call_obj])
        gas = int(gas_hex, 16)
        return gas + gas * GAS_ESTIMATE_BUFFER_PERCENT // 100

    async def get_gas_price(self) -> int:
        price = await self._rpc_call("eth_gasPrice", [])
        return int(price, 16)

    async def get_balance(self, address: str) -> int:
        balance = await self._rpc_call("eth_getBalance", [address, "latest"])
        return int(balance, 16)

    async def get_block_number(self) -> int:
        block = await self._rpc_call("eth_blockNumber", [])
        return int(block, 16)

    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TransactionReceipt:
        """Poll until the receipt has enough confirmations."""
        timeout = self.settings.confirmation_timeout_seconds
        poll_interval = self.settings.receipt_poll_interval_seconds
        deadline = time.monotonic() + timeout

        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt:
                    if not receipt.is_success:
                        raise TransactionRevertedError(
                            f"Transaction reverted: {tx_hash}",
                            tx_hash=tx_hash,
                        )

                    current_block = await self.get_block_number()
                    receipt.confirmations = current_block - receipt.block_number + 1
                    if receipt.confirmations >= confirmations:
                        logger.info(
                            f"Transaction confirmed: {tx_hash} "
                            f"(block {receipt.block_number}, {receipt.confirmations} confirmations)"
                        )
                        return receipt
            except (NetworkError, RateLimitError) as e:
                logger.warning(f"Error checking transaction status: {e}")

            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(
                    f"Confirmation timeout after {timeout}s for {tx_hash}",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
