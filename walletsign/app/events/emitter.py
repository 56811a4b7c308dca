from __future__ import annotations

from typing import Protocol

from walletsign.app.events.models import VerificationEvent


class VerificationEventEmitter(Protocol):
    """
    Interface for broadcasting verifier observations.

    Implementations must be fail-safe: emission failures must not change
    a verification outcome.
    """

    async def emit(self, event: VerificationEvent) -> None:
        ...


class NullEventEmitter:
    """No-op emitter, used when nobody is listening."""

    async def emit(self, event: VerificationEvent) -> None:
        return
