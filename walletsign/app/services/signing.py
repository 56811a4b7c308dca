"""
Wallet signing flows.

Two ways to bind a signer to a document digest:

    off-chain   The wallet signs the consent message (``personal_sign``).
                The signature string is the proof.

    on-chain    The consent message is embedded as the payload of a
                zero-value transaction. Once mined, the transaction is
                the proof and the message text is recorded as the
                signature.

Both flows return a ``SigningResult`` that feeds artifact generation.
Stable abstraction boundary: these flows do not know HOW the wallet
signs, only that it answers the ``WalletClient`` interface.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from walletsign.app.schemas.chain import NetworkProfile
from walletsign.app.schemas.records import SigningResult
from walletsign.app.services.wallet import WalletClient, WalletError, ensure_network
from walletsign.app.utils.hashing import HashingContext
from walletsign.app.utils.messages import format_signature_message

logger = logging.getLogger("walletsign.signing")


class SignerMismatch(WalletError):
    """The connected wallet is not the address asked to sign."""


def _now_ms() -> int:
    return int(time.time() * 1000)


async def sign_off_chain(
    *,
    wallet: WalletClient,
    hashing: HashingContext,
    original_bytes: bytes,
    signer_address: str,
    timestamp_ms: Optional[int] = None,
) -> SigningResult:
    """Have the wallet sign the consent message for the document."""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else _now_ms()

    message = format_signature_message(hashing.digest(original_bytes), timestamp_ms)
    signature = await wallet.sign_message(message, signer_address)

    logger.info("document_signed_off_chain", extra={"signer": signer_address})

    return SigningResult(signature=signature, timestamp_ms=timestamp_ms)


async def sign_on_chain(
    *,
    wallet: WalletClient,
    hashing: HashingContext,
    network: NetworkProfile,
    original_bytes: bytes,
    signer_address: str,
    recipient: str = "0x0000000000000000000000000000000000000000",
    gas_limit: int = 100_000,
    timestamp_ms: Optional[int] = None,
) -> SigningResult:
    """
    Embed the consent message in a transaction and wait until it is mined.

    Raises:
        NetworkSwitchFailure: the wallet could not reach ``network``.
        SignerMismatch: ``signer_address`` is not a connected account.
        SigningRejected: the user declined the transaction.
        WalletError: submission failed or the transaction did not succeed.
    """
    await ensure_network(wallet, network)

    accounts = await wallet.get_accounts()
    if not accounts:
        raise WalletError("No wallet connected. Please connect your wallet first.")

    if signer_address.lower() not in {account.lower() for account in accounts}:
        raise SignerMismatch("Connected wallet does not match the signing wallet")

    timestamp_ms = timestamp_ms if timestamp_ms is not None else _now_ms()
    message = format_signature_message(hashing.digest(original_bytes), timestamp_ms)

    transaction_id = await wallet.send_transaction(
        sender=signer_address,
        recipient=recipient,
        value=0,
        data=message.encode("utf-8"),
        gas_limit=gas_limit,
    )

    receipt = await wallet.wait_for_receipt(transaction_id)
    if not receipt.succeeded:
        logger.warning(
            "transaction_not_confirmed",
            extra={
                "transaction_id": transaction_id,
                "status": receipt.status.value,
            },
        )
        raise WalletError("Transaction failed to confirm")

    logger.info(
        "document_signed_on_chain",
        extra={
            "transaction_id": transaction_id,
            "block_number": receipt.block_number,
            "signer": signer_address,
            "explorer_url": network.transaction_url(transaction_id),
        },
    )

    return SigningResult(
        signature=message,
        transaction_id=transaction_id,
        block_number=receipt.block_number,
        timestamp_ms=timestamp_ms,
    )
