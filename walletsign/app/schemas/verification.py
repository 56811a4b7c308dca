"""
Verification outcome schema.

A rejected verification is an expected protocol outcome, not an error.
It is reported through ``VerificationResult`` with a stable reason code
and a human-readable message.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from walletsign.app.schemas.records import VerificationRecord


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    """
    Stable rejection codes.

    Ordered as the verifier checks them: existence, content binding,
    execution success.
    """

    RECORD_NOT_FOUND = "record not found"
    TRANSACTION_NOT_FOUND = "transaction not found"
    TRANSACTION_DATA_MISMATCH = "transaction data mismatch"
    TRANSACTION_FAILED = "transaction failed or reverted"
    CHAIN_QUERY_FAILED = "chain query failed"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.RECORD_NOT_FOUND: (
        "Document not found in our records. Please ensure this is a "
        "complete WalletSign-generated document."
    ),
    RejectionReason.TRANSACTION_NOT_FOUND: (
        "Transaction not found on blockchain. The document might be "
        "tampered with."
    ),
    RejectionReason.TRANSACTION_DATA_MISMATCH: (
        "Transaction data mismatch. The document might be tampered with."
    ),
    RejectionReason.TRANSACTION_FAILED: (
        "Transaction failed or was reverted on the blockchain."
    ),
    RejectionReason.CHAIN_QUERY_FAILED: (
        "The blockchain could not be queried. Please try again."
    ),
}


class VerificationResult(BaseModel):
    """
    Outcome of verifying a candidate document.

    ``details`` carries the stored record when one was found, including
    for on-chain rejections, so callers can show what was claimed.
    """

    status: VerificationStatus
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None
    candidate_digest: str
    details: Optional[VerificationRecord] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def reason_matches_status(self) -> "VerificationResult":
        if self.status is VerificationStatus.VERIFIED:
            if self.reason is not None or self.details is None:
                raise ValueError(
                    "A verified result carries a record and no reason"
                )
        elif self.reason is None:
            raise ValueError("A rejected result must carry a reason")
        return self

    @property
    def is_verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED

    @classmethod
    def verified(
        cls,
        *,
        candidate_digest: str,
        record: VerificationRecord,
    ) -> "VerificationResult":
        return cls(
            status=VerificationStatus.VERIFIED,
            candidate_digest=candidate_digest,
            details=record,
        )

    @classmethod
    def rejected(
        cls,
        reason: RejectionReason,
        *,
        candidate_digest: str,
        record: Optional[VerificationRecord] = None,
    ) -> "VerificationResult":
        return cls(
            status=VerificationStatus.REJECTED,
            reason=reason,
            message=REJECTION_MESSAGES[reason],
            candidate_digest=candidate_digest,
            details=record,
        )
