from __future__ import annotations

from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class VerificationEventType(str, Enum):
    """
    Verifier state transitions.

    Idle -> Verifying -> {Verified, Rejected}; ``verification_failed``
    marks a mandatory step aborting with an exception.
    """

    VERIFICATION_STARTED = "verification_started"
    VERIFICATION_VERIFIED = "verification_verified"
    VERIFICATION_REJECTED = "verification_rejected"
    VERIFICATION_FAILED = "verification_failed"


TERMINAL_EVENT_TYPES = frozenset(
    {
        VerificationEventType.VERIFICATION_VERIFIED,
        VerificationEventType.VERIFICATION_REJECTED,
        VerificationEventType.VERIFICATION_FAILED,
    }
)


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class VerificationEvent(BaseModel):
    """
    An immutable observation of a verifier state transition.

    Events are observational only. They never decide an outcome.
    """

    event_id: UUID = Field(default_factory=uuid4)
    verification_id: str = Field(..., description="Caller-supplied request id")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: VerificationEventType

    # Optional context (digest, reason, transaction id, ...)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES
