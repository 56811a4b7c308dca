"""
Composition root.

Builds the protocol components from settings and owns the shared HTTP
transport for their lifetime:

    async with open_runtime() as runtime:
        signed = await runtime.sign_off_chain(pdf_bytes, address)
        result = await runtime.verify(signed.artifact_bytes)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import AsyncIterator, Optional

import httpx

from walletsign.app.config import WalletSignSettings, get_settings
from walletsign.app.coordinator.verifier import Verifier
from walletsign.app.schemas.chain import NetworkProfile
from walletsign.app.schemas.records import SignedArtifact
from walletsign.app.schemas.verification import VerificationResult
from walletsign.app.services import signing
from walletsign.app.services.artifact import ArtifactGenerator
from walletsign.app.services.chain_oracle import ChainOracle, JsonRpcChainOracle
from walletsign.app.services.jsonrpc import JsonRpcClient
from walletsign.app.services.wallet import JsonRpcWallet, WalletClient
from walletsign.app.storage.record_store import RecordStore, SqliteRecordStore
from walletsign.app.utils.hashing import HashingContext, get_session_context

logger = logging.getLogger("walletsign.runtime")


def get_app_version() -> str:
    try:
        return version("walletsign")
    except PackageNotFoundError:
        return "0.1.0"


class WalletSignRuntime:
    """
    Wired protocol components.

    Components are injectable for tests; ``open_runtime`` wires the
    production ones.
    """

    def __init__(
        self,
        *,
        settings: WalletSignSettings,
        hashing: HashingContext,
        store: RecordStore,
        oracle: ChainOracle,
        wallet: Optional[WalletClient] = None,
    ) -> None:
        self.settings = settings
        self.hashing = hashing
        self.store = store
        self.oracle = oracle
        self.wallet = wallet
        self.network = NetworkProfile.from_settings(settings)

        self.generator = ArtifactGenerator(
            hashing=hashing,
            store=store,
            network=self.network,
            oracle=oracle,
            branding_line=settings.branding_line,
        )
        self.verifier = Verifier(hashing=hashing, store=store, oracle=oracle)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sign_off_chain(
        self,
        original_bytes: bytes,
        signer_address: str,
    ) -> SignedArtifact:
        """Wallet-sign the consent message and produce the signed artifact."""
        result = await signing.sign_off_chain(
            wallet=self._require_wallet(),
            hashing=self.hashing,
            original_bytes=original_bytes,
            signer_address=signer_address,
        )
        return await self.generator.generate(
            original_bytes=original_bytes,
            signature=result.signature,
            signer_address=signer_address,
            signed_at_ms=result.timestamp_ms,
        )

    async def sign_on_chain(
        self,
        original_bytes: bytes,
        signer_address: str,
    ) -> SignedArtifact:
        """Anchor the consent message on-chain and produce the signed artifact."""
        result = await signing.sign_on_chain(
            wallet=self._require_wallet(),
            hashing=self.hashing,
            network=self.network,
            original_bytes=original_bytes,
            signer_address=signer_address,
            recipient=self.settings.transaction_recipient,
            gas_limit=self.settings.transaction_gas_limit,
        )
        return await self.generator.generate(
            original_bytes=original_bytes,
            signature=result.signature,
            signer_address=signer_address,
            transaction_id=result.transaction_id,
            block_number=result.block_number,
            signed_at_ms=result.timestamp_ms,
        )

    async def verify(self, candidate_bytes: bytes) -> VerificationResult:
        return await self.verifier.verify(candidate_bytes)

    async def verify_transaction_succeeded(self, transaction_id: str) -> bool:
        return await self.oracle.verify_transaction_succeeded(transaction_id)

    def _require_wallet(self) -> WalletClient:
        if self.wallet is None:
            raise RuntimeError(
                "No wallet configured; set WALLETSIGN_WALLET_RPC_URL to sign"
            )
        return self.wallet


@asynccontextmanager
async def open_runtime(
    settings: Optional[WalletSignSettings] = None,
) -> AsyncIterator[WalletSignRuntime]:
    """
    Build the production runtime.

    Guarantees:
    - Settings are validated before any resource is allocated
    - The record store schema is ready before the runtime is handed out
    - The shared HTTP client is closed on exit
    """
    settings = settings or get_settings()

    logger.info(
        "walletsign_startup_begin",
        extra={"version": get_app_version(), "chain_id": settings.chain_id},
    )

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            timeout=settings.rpc_timeout_seconds,
            connect=10.0,
        ),
        limits=httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
        ),
        headers={"User-Agent": f"walletsign/{get_app_version()}"},
    )

    try:
        store = SqliteRecordStore(settings.database_path)
        await store.initialize()

        oracle = JsonRpcChainOracle(
            JsonRpcClient(
                http_client=http_client,
                endpoint=str(settings.rpc_url),
                retry_seconds=settings.rpc_retry_seconds,
            )
        )

        wallet = None
        if settings.wallet_rpc_url is not None:
            wallet = JsonRpcWallet(
                rpc=JsonRpcClient(
                    http_client=http_client,
                    endpoint=str(settings.wallet_rpc_url),
                    retry_seconds=settings.rpc_retry_seconds,
                ),
                oracle=oracle,
                receipt_poll_interval=settings.receipt_poll_interval_seconds,
                receipt_timeout=settings.receipt_timeout_seconds,
            )

        yield WalletSignRuntime(
            settings=settings,
            hashing=get_session_context(settings),
            store=store,
            oracle=oracle,
            wallet=wallet,
        )
    finally:
        logger.info("walletsign_shutdown_begin")
        await http_client.aclose()
