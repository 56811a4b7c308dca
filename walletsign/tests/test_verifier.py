from unittest.mock import AsyncMock

import pytest

from walletsign.app.events import (
    MemoryQueueEventEmitter,
    VerificationEventType,
)
from walletsign.app.coordinator.verifier import Verifier
from walletsign.app.schemas.chain import NetworkProfile, ReceiptStatus
from walletsign.app.schemas.verification import (
    REJECTION_MESSAGES,
    RejectionReason,
    VerificationStatus,
)
from walletsign.app.services.artifact import ArtifactGenerator
from walletsign.app.storage.record_store import InMemoryRecordStore, StoreAccessFailure
from walletsign.app.utils.hashing import HashingContext, HashingFailure
from walletsign.app.utils.messages import format_signature_message
from walletsign.tests.fixtures.fake_chain import FakeChainOracle
from walletsign.tests.fixtures.pdf_factory import blank_pdf, flip_byte, text_pdf

pytestmark = pytest.mark.anyio

SIGNER = "0x" + "1" * 40
SIGNED_AT_MS = 1709296245123

NETWORK = NetworkProfile(
    chain_id="0x89",
    name="Polygon Mainnet",
    currency_name="MATIC",
    currency_symbol="MATIC",
    rpc_url="https://polygon-rpc.com/",
    explorer_url="https://polygonscan.com/",
)


@pytest.fixture
def hashing():
    return HashingContext(salt=b"v" * 32)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def oracle():
    return FakeChainOracle()


@pytest.fixture
def generator(hashing, store, oracle):
    return ArtifactGenerator(hashing=hashing, store=store, network=NETWORK, oracle=oracle)


@pytest.fixture
def verifier(hashing, store, oracle):
    return Verifier(hashing=hashing, store=store, oracle=oracle)


async def _sign_off_chain(generator, original):
    return await generator.generate(
        original_bytes=original,
        signature="0xsig",
        signer_address=SIGNER,
        signed_at_ms=SIGNED_AT_MS,
    )


async def _sign_on_chain(
    generator,
    oracle,
    hashing,
    original,
    *,
    payload=None,
    status=ReceiptStatus.SUCCESS,
):
    message = format_signature_message(hashing.digest(original), SIGNED_AT_MS)
    transaction_id = oracle.mine(
        (payload if payload is not None else message).encode("utf-8"),
        status=status,
    )
    return await generator.generate(
        original_bytes=original,
        signature=message,
        signer_address=SIGNER,
        transaction_id=transaction_id,
        block_number=oracle.receipts[transaction_id].block_number,
        signed_at_ms=SIGNED_AT_MS,
    )


# ----------------------------------------------------------------------
# Off-chain
# ----------------------------------------------------------------------

async def test_signed_artifact_verifies(generator, verifier):
    signed = await _sign_off_chain(generator, blank_pdf())

    result = await verifier.verify(signed.artifact_bytes)

    assert result.status is VerificationStatus.VERIFIED
    assert result.reason is None
    assert result.details == signed.record
    assert result.candidate_digest == signed.final_digest


async def test_original_document_alone_is_not_found(generator, verifier):
    original = text_pdf("Lease agreement")
    await _sign_off_chain(generator, original)

    result = await verifier.verify(original)

    assert result.status is VerificationStatus.REJECTED
    assert result.reason is RejectionReason.RECORD_NOT_FOUND
    assert result.message == REJECTION_MESSAGES[RejectionReason.RECORD_NOT_FOUND]
    assert result.details is None


async def test_single_flipped_byte_is_rejected(generator, verifier):
    signed = await _sign_off_chain(generator, blank_pdf())

    tampered = flip_byte(signed.artifact_bytes, len(signed.artifact_bytes) // 2)
    result = await verifier.verify(tampered)

    assert result.reason is RejectionReason.RECORD_NOT_FOUND


async def test_verification_under_another_salt_finds_nothing(generator, store, oracle):
    signed = await _sign_off_chain(generator, blank_pdf())
    other = Verifier(
        hashing=HashingContext(salt=b"w" * 32),
        store=store,
        oracle=oracle,
    )

    result = await other.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.RECORD_NOT_FOUND


async def test_off_chain_verification_never_queries_ledger(generator, verifier, oracle):
    signed = await _sign_off_chain(generator, blank_pdf())

    await verifier.verify(signed.artifact_bytes)

    assert oracle.queried == []


async def test_verify_file_matches_in_memory_verification(generator, verifier, tmp_path):
    signed = await _sign_off_chain(generator, blank_pdf())
    path = tmp_path / "signed.pdf"
    path.write_bytes(signed.artifact_bytes)

    result = await verifier.verify_file(path)

    assert result.is_verified


async def test_verify_file_unreadable_raises(verifier, tmp_path):
    with pytest.raises(HashingFailure):
        await verifier.verify_file(tmp_path / "missing.pdf")


# ----------------------------------------------------------------------
# On-chain
# ----------------------------------------------------------------------

async def test_on_chain_artifact_verifies(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(generator, oracle, hashing, blank_pdf())

    result = await verifier.verify(signed.artifact_bytes)

    assert result.is_verified
    assert result.details.transaction_id == signed.record.transaction_id


async def test_missing_transaction_is_rejected(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(generator, oracle, hashing, blank_pdf())
    del oracle.transactions[signed.record.transaction_id]

    result = await verifier.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.TRANSACTION_NOT_FOUND
    assert result.details == signed.record


async def test_payload_without_original_digest_is_rejected(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(
        generator,
        oracle,
        hashing,
        blank_pdf(),
        payload="Original document hash: " + "0" * 64,
    )

    result = await verifier.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.TRANSACTION_DATA_MISMATCH


async def test_reverted_transaction_is_rejected(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(
        generator,
        oracle,
        hashing,
        blank_pdf(),
        status=ReceiptStatus.FAILED,
    )

    result = await verifier.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.TRANSACTION_FAILED


async def test_missing_receipt_is_rejected_as_failed(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(generator, oracle, hashing, blank_pdf())
    del oracle.receipts[signed.record.transaction_id]

    result = await verifier.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.TRANSACTION_FAILED
    assert result.details == signed.record


async def test_content_binding_is_checked_before_receipt(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(
        generator,
        oracle,
        hashing,
        blank_pdf(),
        payload="unrelated",
        status=ReceiptStatus.FAILED,
    )

    before = len(oracle.queried)
    result = await verifier.verify(signed.artifact_bytes)

    assert result.reason is RejectionReason.TRANSACTION_DATA_MISMATCH
    assert oracle.queried[before:] == [f"tx:{signed.record.transaction_id}"]


async def test_unreachable_ledger_is_a_rejection(generator, verifier, oracle, hashing):
    signed = await _sign_on_chain(generator, oracle, hashing, blank_pdf())
    oracle.unreachable = True

    result = await verifier.verify(signed.artifact_bytes)

    assert result.status is VerificationStatus.REJECTED
    assert result.reason is RejectionReason.CHAIN_QUERY_FAILED


# ----------------------------------------------------------------------
# Mandatory step failures
# ----------------------------------------------------------------------

async def test_store_failure_propagates(hashing, oracle):
    store = AsyncMock()
    store.get.side_effect = StoreAccessFailure("database is locked")
    verifier = Verifier(hashing=hashing, store=store, oracle=oracle)

    with pytest.raises(StoreAccessFailure):
        await verifier.verify(blank_pdf())


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

async def _collect(emitter):
    return [event async for event in emitter.stream()]


async def test_events_for_verified_document(generator, verifier):
    signed = await _sign_off_chain(generator, blank_pdf())
    emitter = MemoryQueueEventEmitter()

    await verifier.verify(
        signed.artifact_bytes,
        verification_id="req-1",
        emitter=emitter,
    )
    events = await _collect(emitter)

    assert [e.event_type for e in events] == [
        VerificationEventType.VERIFICATION_STARTED,
        VerificationEventType.VERIFICATION_VERIFIED,
    ]
    assert {e.verification_id for e in events} == {"req-1"}
    assert events[0].details["candidate_digest"] == signed.final_digest


async def test_events_for_rejected_document(verifier):
    emitter = MemoryQueueEventEmitter()

    await verifier.verify(blank_pdf(), emitter=emitter)
    events = await _collect(emitter)

    assert events[-1].event_type is VerificationEventType.VERIFICATION_REJECTED
    assert events[-1].details == {"reason": "record not found"}


async def test_events_for_failed_verification(hashing, oracle):
    store = AsyncMock()
    store.get.side_effect = StoreAccessFailure("database is locked")
    verifier = Verifier(hashing=hashing, store=store, oracle=oracle)
    emitter = MemoryQueueEventEmitter()

    with pytest.raises(StoreAccessFailure):
        await verifier.verify(blank_pdf(), emitter=emitter)
    events = await _collect(emitter)

    assert events[-1].event_type is VerificationEventType.VERIFICATION_FAILED
    assert events[-1].details["exception_type"] == "StoreAccessFailure"


async def test_broken_emitter_does_not_change_outcome(generator, verifier):
    signed = await _sign_off_chain(generator, blank_pdf())
    emitter = AsyncMock()
    emitter.emit.side_effect = RuntimeError("listener gone")

    result = await verifier.verify(signed.artifact_bytes, emitter=emitter)

    assert result.is_verified
    assert emitter.emit.await_count == 2
