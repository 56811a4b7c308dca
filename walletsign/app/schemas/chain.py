"""
Ledger-facing transport objects.

The Chain Oracle reports lookups as explicit found / not-found values
instead of raising, so the verifier can express its checks as ordinary
branching.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from walletsign.app.config import WalletSignSettings


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    UNKNOWN = "unknown"


class TransactionLookup(BaseModel):
    """Result of a transaction lookup. ``payload`` is the raw input data."""

    found: bool
    payload: Optional[bytes] = Field(None, repr=False)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def missing(cls) -> "TransactionLookup":
        return cls(found=False)

    def payload_text(self) -> str:
        """Payload decoded as UTF-8, undecodable bytes replaced."""
        if not self.payload:
            return ""
        return self.payload.decode("utf-8", errors="replace")


class ReceiptLookup(BaseModel):
    """Result of a receipt lookup."""

    found: bool
    status: ReceiptStatus = ReceiptStatus.UNKNOWN
    block_number: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def missing(cls) -> "ReceiptLookup":
        return cls(found=False)

    @property
    def succeeded(self) -> bool:
        return self.found and self.status is ReceiptStatus.SUCCESS


class NetworkProfile(BaseModel):
    """
    Constants describing the target ledger network.

    Used for wallet network negotiation (``wallet_addEthereumChain``
    parameters) and for the labels printed on signature pages.
    """

    chain_id: str
    name: str
    currency_name: str
    currency_symbol: str
    currency_decimals: int = 18
    rpc_url: str
    explorer_url: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: WalletSignSettings) -> "NetworkProfile":
        return cls(
            chain_id=settings.chain_id.lower(),
            name=settings.network_name,
            currency_name=settings.native_currency_name,
            currency_symbol=settings.native_currency_symbol,
            currency_decimals=settings.native_currency_decimals,
            rpc_url=str(settings.rpc_url),
            explorer_url=str(settings.explorer_url),
        )

    def transaction_url(self, transaction_id: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{transaction_id}"

    def add_chain_params(self) -> dict:
        """Parameter object for ``wallet_addEthereumChain``."""
        return {
            "chainId": self.chain_id,
            "chainName": self.name,
            "nativeCurrency": {
                "name": self.currency_name,
                "symbol": self.currency_symbol,
                "decimals": self.currency_decimals,
            },
            "rpcUrls": [self.rpc_url],
            "blockExplorerUrls": [self.explorer_url],
        }
