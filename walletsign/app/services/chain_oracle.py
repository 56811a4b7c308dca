"""
Read-only ledger access.

The Chain Oracle answers two questions about a transaction id:

- does the transaction exist, and what payload does it carry?
- was it mined, and did it execute successfully?

"Not found" is an ordinary answer (``found=False``), never an exception.
``ChainQueryFailure`` is reserved for an unreachable endpoint or a
malformed response.
"""

from __future__ import annotations

import logging
from typing import Protocol

from walletsign.app.schemas.chain import (
    ReceiptLookup,
    ReceiptStatus,
    TransactionLookup,
)
from walletsign.app.services.jsonrpc import (
    JsonRpcClient,
    JsonRpcError,
    JsonRpcTransportError,
    hex_to_bytes,
    hex_to_int,
)

logger = logging.getLogger("walletsign.chain_oracle")


class ChainQueryFailure(RuntimeError):
    """Raised when the ledger cannot be queried or answers malformed data."""


class ChainOracle(Protocol):
    """Capability interface consumed by the artifact generator and verifier."""

    async def get_transaction(self, transaction_id: str) -> TransactionLookup:
        ...

    async def get_receipt(self, transaction_id: str) -> ReceiptLookup:
        ...

    async def verify_transaction_succeeded(self, transaction_id: str) -> bool:
        ...


class JsonRpcChainOracle:
    """
    Chain Oracle backed by an Ethereum-compatible JSON-RPC endpoint.

    Timeouts are those of the underlying ``httpx.AsyncClient``.
    """

    def __init__(self, rpc: JsonRpcClient):
        self._rpc = rpc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> TransactionLookup:
        result = await self._query("eth_getTransactionByHash", transaction_id)

        if result is None:
            return TransactionLookup.missing()

        try:
            payload = hex_to_bytes(result.get("input", result.get("data")))
        except (AttributeError, ValueError) as exc:
            raise ChainQueryFailure(
                f"Malformed transaction returned for {transaction_id}"
            ) from exc

        return TransactionLookup(found=True, payload=payload)

    async def get_receipt(self, transaction_id: str) -> ReceiptLookup:
        result = await self._query("eth_getTransactionReceipt", transaction_id)

        if result is None:
            return ReceiptLookup.missing()

        try:
            raw_status = hex_to_int(result.get("status"))
            block_number = hex_to_int(result.get("blockNumber"))
        except (AttributeError, ValueError) as exc:
            raise ChainQueryFailure(
                f"Malformed receipt returned for {transaction_id}"
            ) from exc

        if raw_status == 1:
            status = ReceiptStatus.SUCCESS
        elif raw_status == 0:
            status = ReceiptStatus.FAILED
        else:
            status = ReceiptStatus.UNKNOWN

        return ReceiptLookup(found=True, status=status, block_number=block_number)

    async def verify_transaction_succeeded(self, transaction_id: str) -> bool:
        """
        Standalone confirmation check: exists and executed successfully.

        Never raises; query failures are logged and reported as ``False``.
        """
        try:
            transaction = await self.get_transaction(transaction_id)
            if not transaction.found:
                logger.info(
                    "transaction_not_found",
                    extra={"transaction_id": transaction_id},
                )
                return False

            receipt = await self.get_receipt(transaction_id)
        except ChainQueryFailure:
            logger.warning(
                "transaction_confirmation_unavailable",
                extra={"transaction_id": transaction_id},
                exc_info=True,
            )
            return False

        return receipt.succeeded

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _query(self, method: str, transaction_id: str):
        try:
            return await self._rpc.call(method, [transaction_id])
        except (JsonRpcError, JsonRpcTransportError) as exc:
            raise ChainQueryFailure(
                f"Ledger query {method} failed for {transaction_id}: {exc}"
            ) from exc
