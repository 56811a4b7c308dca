"""
Signed artifact generation.

Produces the final signed document (original bytes + one appended,
human-readable signature page), computes its digest and persists the
verification record.

Ordering guarantees:
- The original-document digest is recomputed from the original bytes,
  never taken from the caller.
- The record is persisted only after the artifact has been serialized
  and hashed. A failure before that point leaves the store untouched.

The transaction payload shown on the page is best-effort enrichment:
failing to fetch it never aborts generation.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from typing import List, Optional

import anyio.to_thread

from walletsign.app.schemas.chain import NetworkProfile
from walletsign.app.schemas.records import SignedArtifact, VerificationRecord
from walletsign.app.services.chain_oracle import ChainOracle
from walletsign.app.services.signature_page import (
    PageDetail,
    PdfAssemblyError,
    append_page,
    render_signature_page,
)
from walletsign.app.storage.record_store import RecordStore, StoreAccessFailure
from walletsign.app.utils.hashing import HashingContext
from walletsign.app.utils.messages import iso_timestamp, page_timestamp

logger = logging.getLogger("walletsign.artifact")

PENDING_BLOCK = "Pending"


class ArtifactGenerationFailure(RuntimeError):
    """Raised when a signed artifact cannot be produced or recorded."""


class ArtifactGenerator:
    """
    Builds signed artifacts and records them.

    The chain oracle is optional; without one, on-chain artifacts are
    still produced but carry no transaction payload on their page.
    """

    def __init__(
        self,
        *,
        hashing: HashingContext,
        store: RecordStore,
        network: NetworkProfile,
        oracle: Optional[ChainOracle] = None,
        branding_line: str = "Signed via WalletSign (walletsign.io)",
    ) -> None:
        self._hashing = hashing
        self._store = store
        self._network = network
        self._oracle = oracle
        self._branding_line = branding_line

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        *,
        original_bytes: bytes,
        signature: str,
        signer_address: str,
        transaction_id: Optional[str] = None,
        block_number: Optional[int] = None,
        signed_at_ms: Optional[int] = None,
    ) -> SignedArtifact:
        """
        Produce the signed artifact and persist its record.

        Raises:
            ArtifactGenerationFailure: the original could not be parsed,
                the artifact could not be serialized, or the record
                could not be stored.
        """
        if signed_at_ms is None:
            signed_at_ms = int(time.time() * 1000)

        original_digest = self._hashing.digest(original_bytes)
        block_label = str(block_number) if block_number is not None else None

        details = [
            PageDetail(label="Signer's Wallet Address:", value=signer_address),
            PageDetail(label="Signature Timestamp:", value=page_timestamp(signed_at_ms)),
            PageDetail(label="Original Document Hash:", value=original_digest),
        ]

        if transaction_id is not None:
            details.extend(
                await self._transaction_details(transaction_id, block_label)
            )

        try:
            artifact_bytes = await anyio.to_thread.run_sync(
                partial(self._assemble, original_bytes, details)
            )
        except PdfAssemblyError as exc:
            logger.exception(
                "artifact_assembly_failed",
                extra={"original_digest": original_digest},
            )
            raise ArtifactGenerationFailure(
                "Failed to generate signed PDF document"
            ) from exc

        final_digest = self._hashing.digest(artifact_bytes)

        record = VerificationRecord(
            final_digest=final_digest,
            original_digest=original_digest,
            signature=signature,
            signer_address=signer_address,
            signed_at=iso_timestamp(signed_at_ms),
            transaction_id=transaction_id,
            block_number=block_label,
            network_id=self._network.chain_id if transaction_id else None,
        )

        try:
            await self._store.put(record)
        except StoreAccessFailure as exc:
            logger.exception(
                "artifact_record_store_failed",
                extra={"final_digest": final_digest},
            )
            raise ArtifactGenerationFailure(
                "Failed to store document in database"
            ) from exc

        logger.info(
            "artifact_generated",
            extra={
                "final_digest": final_digest,
                "original_digest": original_digest,
                "on_chain": transaction_id is not None,
                "artifact_size": len(artifact_bytes),
            },
        )

        return SignedArtifact(
            artifact_bytes=artifact_bytes,
            final_digest=final_digest,
            record=record,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _assemble(self, original_bytes: bytes, details: List[PageDetail]) -> bytes:
        page_pdf = render_signature_page(
            details=details,
            branding_line=self._branding_line,
        )
        return append_page(original_bytes, page_pdf)

    async def _transaction_details(
        self,
        transaction_id: str,
        block_label: Optional[str],
    ) -> List[PageDetail]:
        details = [
            PageDetail(label="Transaction Hash:", value=transaction_id),
            PageDetail(label="Network:", value=self._network.name),
            PageDetail(label="Block Number:", value=block_label or PENDING_BLOCK),
        ]

        payload = await self._fetch_payload_text(transaction_id)
        if payload:
            details.append(PageDetail(label="Transaction Data:", value=payload))

        return details

    async def _fetch_payload_text(self, transaction_id: str) -> Optional[str]:
        """Best-effort: any failure is logged and yields ``None``."""
        if self._oracle is None:
            return None

        try:
            lookup = await self._oracle.get_transaction(transaction_id)
        except Exception:
            logger.warning(
                "transaction_payload_unavailable",
                extra={"transaction_id": transaction_id},
                exc_info=True,
            )
            return None

        if not lookup.found:
            return None
        return lookup.payload_text() or None
