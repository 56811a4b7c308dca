"""
Document verifier.

Reconciles an uploaded candidate document against stored verification
records and, for on-chain signatures, against the ledger.

State machine:

    Idle -> Verifying -> {Verified, Rejected}

Check order for on-chain records (each catches a different tamper
vector):

    1. existence        the transaction is on the ledger
    2. content binding  its payload contains the original digest
    3. execution        its receipt reports success

Rejections are ordinary results, never exceptions. Mandatory steps
(hashing, store lookup) propagate their failures to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from walletsign.app.events import (
    NullEventEmitter,
    VerificationEvent,
    VerificationEventEmitter,
    VerificationEventType,
)
from walletsign.app.schemas.records import VerificationRecord
from walletsign.app.schemas.verification import RejectionReason, VerificationResult
from walletsign.app.services.chain_oracle import ChainOracle, ChainQueryFailure
from walletsign.app.storage.record_store import RecordStore
from walletsign.app.utils.hashing import HashingContext

logger = logging.getLogger("walletsign.verifier")


class Verifier:
    """Verifies candidate documents against records and the ledger."""

    def __init__(
        self,
        *,
        hashing: HashingContext,
        store: RecordStore,
        oracle: ChainOracle,
    ) -> None:
        self._hashing = hashing
        self._store = store
        self._oracle = oracle

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def verify(
        self,
        candidate_bytes: bytes,
        *,
        verification_id: Optional[str] = None,
        emitter: Optional[VerificationEventEmitter] = None,
    ) -> VerificationResult:
        """
        Verify a candidate document.

        Raises:
            StoreAccessFailure: the record store could not be read.
        """
        candidate_digest = self._hashing.digest(candidate_bytes)
        return await self._verify_digest(
            candidate_digest,
            verification_id=verification_id,
            emitter=emitter,
        )

    async def verify_file(
        self,
        path: Path,
        *,
        verification_id: Optional[str] = None,
        emitter: Optional[VerificationEventEmitter] = None,
    ) -> VerificationResult:
        """
        Verify a candidate document on disk.

        Raises:
            HashingFailure: the file could not be read.
            StoreAccessFailure: the record store could not be read.
        """
        candidate_digest = self._hashing.digest_file(path)
        return await self._verify_digest(
            candidate_digest,
            verification_id=verification_id,
            emitter=emitter,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _verify_digest(
        self,
        candidate_digest: str,
        *,
        verification_id: Optional[str],
        emitter: Optional[VerificationEventEmitter],
    ) -> VerificationResult:
        verification_id = verification_id or str(uuid4())
        emitter = emitter or NullEventEmitter()

        await self._emit(
            emitter,
            verification_id,
            VerificationEventType.VERIFICATION_STARTED,
            {"candidate_digest": candidate_digest},
        )

        try:
            record = await self._store.get(candidate_digest)

            if record is None:
                result = VerificationResult.rejected(
                    RejectionReason.RECORD_NOT_FOUND,
                    candidate_digest=candidate_digest,
                )
            elif record.transaction_id is None:
                result = VerificationResult.verified(
                    candidate_digest=candidate_digest,
                    record=record,
                )
            else:
                result = await self._verify_on_chain(candidate_digest, record)

        except Exception as exc:
            await self._emit(
                emitter,
                verification_id,
                VerificationEventType.VERIFICATION_FAILED,
                {
                    "error": str(exc),
                    "exception_type": type(exc).__name__,
                },
            )
            raise

        if result.is_verified:
            await self._emit(
                emitter,
                verification_id,
                VerificationEventType.VERIFICATION_VERIFIED,
                {"final_digest": candidate_digest},
            )
        else:
            logger.info(
                "verification_rejected",
                extra={
                    "candidate_digest": candidate_digest,
                    "reason": result.reason.value,
                },
            )
            await self._emit(
                emitter,
                verification_id,
                VerificationEventType.VERIFICATION_REJECTED,
                {"reason": result.reason.value},
            )

        return result

    async def _verify_on_chain(
        self,
        candidate_digest: str,
        record: VerificationRecord,
    ) -> VerificationResult:
        transaction_id = record.transaction_id

        def rejected(reason: RejectionReason) -> VerificationResult:
            return VerificationResult.rejected(
                reason,
                candidate_digest=candidate_digest,
                record=record,
            )

        try:
            transaction = await self._oracle.get_transaction(transaction_id)
            if not transaction.found:
                return rejected(RejectionReason.TRANSACTION_NOT_FOUND)

            if record.original_digest not in transaction.payload_text():
                return rejected(RejectionReason.TRANSACTION_DATA_MISMATCH)

            receipt = await self._oracle.get_receipt(transaction_id)
            if not receipt.succeeded:
                return rejected(RejectionReason.TRANSACTION_FAILED)

        except ChainQueryFailure:
            logger.warning(
                "verification_chain_query_failed",
                extra={"transaction_id": transaction_id},
                exc_info=True,
            )
            return rejected(RejectionReason.CHAIN_QUERY_FAILED)

        return VerificationResult.verified(
            candidate_digest=candidate_digest,
            record=record,
        )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @staticmethod
    async def _emit(
        emitter: VerificationEventEmitter,
        verification_id: str,
        event_type: VerificationEventType,
        details: dict,
    ) -> None:
        try:
            await emitter.emit(
                VerificationEvent(
                    verification_id=verification_id,
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception:
            logger.warning(
                "verification_event_emit_failed",
                extra={"event_type": event_type.value},
                exc_info=True,
            )
