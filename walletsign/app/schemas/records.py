"""
Verification record schema.

A VerificationRecord is the unit of truth for a signed document. It is
created exactly once, when the signed artifact has been serialized, and
is never mutated afterwards.

Field aliases mirror the persisted layout (camelCase).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VerificationRecord(BaseModel):
    """
    Persisted metadata binding a final digest to its signer.

    ``network_id`` is present if and only if ``transaction_id`` is.
    """

    final_digest: str = Field(
        ...,
        alias="finalDigest",
        min_length=1,
        description="Digest of the complete signed artifact (primary key)",
    )

    original_digest: str = Field(
        ...,
        alias="originalDigest",
        min_length=1,
        description="Digest of the document before the signature page",
    )

    signature: str = Field(
        ...,
        description=(
            "Wallet signature (off-chain) or the consent message embedded "
            "in the transaction (on-chain)"
        ),
    )

    signer_address: str = Field(..., alias="signerAddress")

    signed_at: str = Field(
        ...,
        alias="signedAt",
        description="ISO-8601 UTC moment of signing",
    )

    transaction_id: Optional[str] = Field(None, alias="transactionId")
    block_number: Optional[str] = Field(None, alias="blockNumber")
    network_id: Optional[str] = Field(None, alias="networkId")

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )

    @model_validator(mode="after")
    def network_tracks_transaction(self) -> "VerificationRecord":
        if (self.transaction_id is None) != (self.network_id is None):
            raise ValueError(
                "network_id must be set if and only if transaction_id is set"
            )
        return self

    @property
    def is_on_chain(self) -> bool:
        return self.transaction_id is not None


class SigningResult(BaseModel):
    """Outcome of a wallet signing flow, ready for artifact generation."""

    signature: str
    timestamp_ms: int
    transaction_id: Optional[str] = None
    block_number: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class SignedArtifact(BaseModel):
    """Signed document bytes together with the record persisted for them."""

    artifact_bytes: bytes = Field(..., repr=False)
    final_digest: str
    record: VerificationRecord

    model_config = ConfigDict(frozen=True)
