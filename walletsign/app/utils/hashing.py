"""
Salted document digests.

Every digest in the protocol is computed the same way:

    outer( HMAC-keyed(salt, content) )

i.e. an HMAC-SHA256 of the raw bytes keyed by the session salt, followed
by a plain SHA-256 over the HMAC output. The result is a 64-character
lowercase hex string.

The salt is carried by an explicit ``HashingContext`` rather than
ambient module state, so the hash stays a pure function of its inputs.
A single context per process is exposed through ``get_session_context``.

IMPORTANT:
- This module hashes bytes, and bytes only.
- Digests computed under different salts are unrelated. Records signed
  under one salt can only be re-verified by a process holding that salt.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from walletsign.app.config import WalletSignSettings

logger = logging.getLogger("walletsign.hashing")

SALT_LENGTH = 32

_READ_CHUNK_SIZE = 1024 * 1024


class HashingFailure(RuntimeError):
    """Raised when document content cannot be read for hashing."""


class HashingContext(BaseModel):
    """
    Explicit hashing parameters.

    ``salt`` keys the inner HMAC round. The algorithm identifiers name
    ``hashlib`` constructors for the keyed and the outer round.
    """

    salt: bytes = Field(..., min_length=16, repr=False)
    keyed_algorithm: str = "sha256"
    outer_algorithm: str = "sha256"

    model_config = ConfigDict(frozen=True)

    @classmethod
    def generate(cls) -> "HashingContext":
        """Draw a fresh random salt."""
        return cls(salt=secrets.token_bytes(SALT_LENGTH))

    @classmethod
    def from_hex(cls, salt_hex: str) -> "HashingContext":
        return cls(salt=bytes.fromhex(salt_hex.strip()))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def digest(self, content: Union[bytes, bytearray, memoryview]) -> str:
        """
        Compute the salted, double-round digest of ``content``.

        Raises:
            TypeError: if ``content`` is not a bytes-like object.
        """
        if not isinstance(content, (bytes, bytearray, memoryview)):
            raise TypeError(
                "digest expects bytes, "
                f"got {type(content).__name__}"
            )

        keyed = hmac.new(self.salt, content, self.keyed_algorithm)
        return self._outer(keyed.digest())

    def digest_file(self, path: Path) -> str:
        """
        Stream a file from disk through the digest.

        Raises:
            HashingFailure: if the file cannot be read.
        """
        keyed = hmac.new(self.salt, digestmod=self.keyed_algorithm)

        try:
            with Path(path).open("rb") as f:
                for chunk in iter(lambda: f.read(_READ_CHUNK_SIZE), b""):
                    keyed.update(chunk)
        except OSError as exc:
            logger.exception(
                "document_read_failed",
                extra={"path": str(path)},
            )
            raise HashingFailure(
                f"Failed to read document for hashing: {exc}"
            ) from exc

        return self._outer(keyed.digest())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _outer(self, keyed_digest: bytes) -> str:
        return hashlib.new(self.outer_algorithm, keyed_digest).hexdigest()


# ----------------------------------------------------------------------
# Process-wide session context
# ----------------------------------------------------------------------

_session_context: Optional[HashingContext] = None


def get_session_context(
    settings: Optional[WalletSignSettings] = None,
) -> HashingContext:
    """
    Return the hashing context for this process.

    Created on first use: from ``settings.hash_salt`` when configured,
    otherwise from a random salt that lives until the process exits.
    A configured salt that differs from the established context is
    logged and ignored.
    """
    global _session_context

    if _session_context is None:
        if settings is not None and settings.hash_salt is not None:
            _session_context = HashingContext.from_hex(
                settings.hash_salt.get_secret_value()
            )
            logger.info("hashing_context_loaded", extra={"salt_source": "settings"})
        else:
            _session_context = HashingContext.generate()
            logger.info("hashing_context_loaded", extra={"salt_source": "random"})

    elif settings is not None and settings.hash_salt is not None:
        configured = bytes.fromhex(settings.hash_salt.get_secret_value().strip())
        if not hmac.compare_digest(configured, _session_context.salt):
            logger.warning(
                "hashing_context_salt_mismatch",
                extra={"detail": "configured salt ignored; session context already set"},
            )

    return _session_context


def reset_session_context() -> None:
    """Forget the process-wide context. The next call draws a new salt."""
    global _session_context
    _session_context = None
