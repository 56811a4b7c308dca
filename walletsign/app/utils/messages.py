"""
Canonical consent message.

The message text is exact-match significant: on-chain verification
looks for the original document digest as a substring of the message
stored in the transaction payload. The template must never reorder or
omit the digest line.
"""

from __future__ import annotations

from datetime import datetime, timezone

CONSENT_STATEMENT = (
    "By signing this document, I hereby confirm that I have read and "
    "understand its content, consent to use electronic records and "
    "electronic signatures, and agree to be legally bound by its terms."
)


def iso_timestamp(timestamp_ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.sssZ`` (UTC)."""
    seconds, millis = divmod(int(timestamp_ms), 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{millis:03d}Z"


def page_timestamp(timestamp_ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DD HH:MM:SS UTC``."""
    moment = datetime.fromtimestamp(int(timestamp_ms) // 1000, tz=timezone.utc)
    return f"{moment:%Y-%m-%d %H:%M:%S} UTC"


def format_signature_message(digest: str, timestamp_ms: int) -> str:
    """Build the consent statement a signer approves for ``digest``."""
    return (
        f"{CONSENT_STATEMENT}\n"
        "\n"
        f"Timestamp: {iso_timestamp(timestamp_ms)}\n"
        "\n"
        f"Original document hash: {digest}"
    )
