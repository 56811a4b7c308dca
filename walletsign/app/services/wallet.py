"""
Wallet signing capability.

The core never holds keys. It consumes a wallet that can:

- report its connected accounts and active network
- switch to, or register, a target network
- sign a message for an address (``personal_sign``)
- submit a transaction and report its receipt once mined

``JsonRpcWallet`` implements the capability over an EIP-1193 style
JSON-RPC endpoint (a wallet bridge or a node with unlocked accounts).
"""

from __future__ import annotations

import logging
from typing import List, Protocol

import anyio

from walletsign.app.schemas.chain import NetworkProfile, ReceiptLookup
from walletsign.app.services.chain_oracle import ChainOracle, ChainQueryFailure
from walletsign.app.services.jsonrpc import (
    JsonRpcClient,
    JsonRpcError,
    JsonRpcTransportError,
    bytes_to_hex,
)

logger = logging.getLogger("walletsign.wallet")

# EIP-1193 / MetaMask provider error codes
USER_REJECTED_REQUEST = 4001
UNRECOGNIZED_CHAIN = 4902


class WalletError(RuntimeError):
    """Raised when a wallet request fails."""


class SigningRejected(WalletError):
    """The wallet user declined the request."""


class UnknownNetwork(WalletError):
    """The wallet does not know the requested chain."""


class NetworkSwitchFailure(WalletError):
    """The wallet could not be moved to the target network."""


class WalletClient(Protocol):
    async def get_accounts(self) -> List[str]:
        ...

    async def get_chain_id(self) -> str:
        ...

    async def switch_chain(self, chain_id: str) -> None:
        ...

    async def add_chain(self, network: NetworkProfile) -> None:
        ...

    async def sign_message(self, message: str, address: str) -> str:
        ...

    async def send_transaction(
        self,
        *,
        sender: str,
        recipient: str,
        value: int,
        data: bytes,
        gas_limit: int,
    ) -> str:
        ...

    async def wait_for_receipt(self, transaction_id: str) -> ReceiptLookup:
        ...


# ----------------------------------------------------------------------
# Network negotiation
# ----------------------------------------------------------------------

async def ensure_network(wallet: WalletClient, network: NetworkProfile) -> None:
    """
    Move the wallet onto ``network``.

    Switches when the active chain differs; registers the network first
    when the wallet reports it as unknown.

    Raises:
        NetworkSwitchFailure: switching or registering failed.
    """
    try:
        current = (await wallet.get_chain_id()).lower()
        if current == network.chain_id.lower():
            return

        logger.info(
            "wallet_network_switch",
            extra={"from_chain": current, "to_chain": network.chain_id},
        )

        try:
            await wallet.switch_chain(network.chain_id)
        except UnknownNetwork:
            logger.info(
                "wallet_network_register",
                extra={"chain_id": network.chain_id, "name": network.name},
            )
            await wallet.add_chain(network)
    except WalletError as exc:
        raise NetworkSwitchFailure(
            f"Failed to switch to {network.name}. Please try again."
        ) from exc


# ----------------------------------------------------------------------
# JSON-RPC implementation
# ----------------------------------------------------------------------

class JsonRpcWallet:
    """
    Wallet reached through JSON-RPC.

    Receipts are awaited by polling the chain oracle, which bounds the
    wait with ``receipt_timeout`` seconds.
    """

    def __init__(
        self,
        *,
        rpc: JsonRpcClient,
        oracle: ChainOracle,
        receipt_poll_interval: float = 2.0,
        receipt_timeout: float = 300.0,
    ):
        self._rpc = rpc
        self._oracle = oracle
        self.receipt_poll_interval = receipt_poll_interval
        self.receipt_timeout = receipt_timeout

    async def get_accounts(self) -> List[str]:
        result = await self._request("eth_accounts")
        if not isinstance(result, list):
            raise WalletError("eth_accounts returned a malformed account list")
        return [str(account) for account in result]

    async def get_chain_id(self) -> str:
        return str(await self._request("eth_chainId"))

    async def switch_chain(self, chain_id: str) -> None:
        await self._request(
            "wallet_switchEthereumChain",
            [{"chainId": chain_id}],
        )

    async def add_chain(self, network: NetworkProfile) -> None:
        await self._request(
            "wallet_addEthereumChain",
            [network.add_chain_params()],
        )

    async def sign_message(self, message: str, address: str) -> str:
        signature = await self._request(
            "personal_sign",
            [bytes_to_hex(message.encode("utf-8")), address],
        )
        return str(signature)

    async def send_transaction(
        self,
        *,
        sender: str,
        recipient: str,
        value: int,
        data: bytes,
        gas_limit: int,
    ) -> str:
        transaction_id = await self._request(
            "eth_sendTransaction",
            [
                {
                    "from": sender,
                    "to": recipient,
                    "value": hex(value),
                    "data": bytes_to_hex(data),
                    "gas": hex(gas_limit),
                }
            ],
        )
        logger.info(
            "transaction_sent",
            extra={"transaction_id": transaction_id, "sender": sender},
        )
        return str(transaction_id)

    async def wait_for_receipt(self, transaction_id: str) -> ReceiptLookup:
        """
        Poll until the transaction is mined.

        Raises:
            WalletError: no receipt within ``receipt_timeout`` seconds, or
                the ledger could not be queried.
        """
        try:
            with anyio.fail_after(self.receipt_timeout):
                while True:
                    receipt = await self._oracle.get_receipt(transaction_id)
                    if receipt.found:
                        return receipt
                    await anyio.sleep(self.receipt_poll_interval)
        except TimeoutError as exc:
            raise WalletError(
                f"Transaction {transaction_id} was not confirmed in time"
            ) from exc
        except ChainQueryFailure as exc:
            raise WalletError(
                f"Transaction {transaction_id} could not be confirmed: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, params: list | None = None):
        try:
            return await self._rpc.call(method, params)
        except JsonRpcError as exc:
            if exc.code == USER_REJECTED_REQUEST:
                raise SigningRejected(
                    "Request was rejected in the wallet. Please try again."
                ) from exc
            if exc.code == UNRECOGNIZED_CHAIN:
                raise UnknownNetwork(exc.message) from exc
            raise WalletError(f"{method} failed: {exc.message}") from exc
        except JsonRpcTransportError as exc:
            raise WalletError(f"{method} failed: {exc}") from exc
