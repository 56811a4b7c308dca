import json

import httpx
import pytest

from walletsign.app.schemas.chain import ReceiptStatus
from walletsign.app.services.chain_oracle import ChainQueryFailure, JsonRpcChainOracle
from walletsign.app.services.jsonrpc import (
    JsonRpcClient,
    JsonRpcError,
    JsonRpcTransportError,
    bytes_to_hex,
    hex_to_bytes,
    hex_to_int,
)

pytestmark = pytest.mark.anyio

ENDPOINT = "https://rpc.test"
TX_ID = "0x" + "ab" * 32


def _rpc_handler(results: dict):
    """Answer each JSON-RPC method from ``results``; callables get the request body."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append(body)
        answer = results[body["method"]]
        if callable(answer):
            return answer(body)
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": body["id"], "result": answer},
        )

    handler.calls = calls
    return handler


def _oracle(handler, retry_seconds: float = 0) -> JsonRpcChainOracle:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JsonRpcChainOracle(
        JsonRpcClient(
            http_client=client,
            endpoint=ENDPOINT,
            retry_seconds=retry_seconds,
        )
    )


# ----------------------------------------------------------------------
# Transactions
# ----------------------------------------------------------------------

async def test_transaction_payload_is_decoded():
    payload = "Original document hash: abc".encode("utf-8")
    handler = _rpc_handler(
        {"eth_getTransactionByHash": {"hash": TX_ID, "input": bytes_to_hex(payload)}}
    )

    lookup = await _oracle(handler).get_transaction(TX_ID)

    assert lookup.found
    assert lookup.payload == payload
    assert handler.calls[0]["params"] == [TX_ID]


async def test_unknown_transaction_is_not_found():
    handler = _rpc_handler({"eth_getTransactionByHash": None})

    lookup = await _oracle(handler).get_transaction(TX_ID)

    assert not lookup.found
    assert lookup.payload_text() == ""


async def test_malformed_transaction_raises_chain_query_failure():
    handler = _rpc_handler({"eth_getTransactionByHash": {"input": "not-hex"}})

    with pytest.raises(ChainQueryFailure):
        await _oracle(handler).get_transaction(TX_ID)


async def test_rpc_error_object_raises_chain_query_failure():
    def error(body):
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": -32000, "message": "header not found"},
            },
        )

    handler = _rpc_handler({"eth_getTransactionByHash": error})

    with pytest.raises(ChainQueryFailure):
        await _oracle(handler).get_transaction(TX_ID)


async def test_http_error_status_raises_chain_query_failure():
    handler = _rpc_handler(
        {"eth_getTransactionByHash": lambda body: httpx.Response(503)}
    )

    with pytest.raises(ChainQueryFailure):
        await _oracle(handler).get_transaction(TX_ID)


async def test_unreachable_endpoint_raises_chain_query_failure():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ChainQueryFailure):
        await _oracle(refuse).get_transaction(TX_ID)


# ----------------------------------------------------------------------
# Receipts
# ----------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw_status, expected",
    [
        ("0x1", ReceiptStatus.SUCCESS),
        ("0x0", ReceiptStatus.FAILED),
        (None, ReceiptStatus.UNKNOWN),
    ],
)
async def test_receipt_status_mapping(raw_status, expected):
    handler = _rpc_handler(
        {"eth_getTransactionReceipt": {"status": raw_status, "blockNumber": "0x4d2"}}
    )

    receipt = await _oracle(handler).get_receipt(TX_ID)

    assert receipt.found
    assert receipt.status is expected
    assert receipt.block_number == 1234


async def test_pending_transaction_has_no_receipt():
    handler = _rpc_handler({"eth_getTransactionReceipt": None})

    receipt = await _oracle(handler).get_receipt(TX_ID)

    assert not receipt.found
    assert not receipt.succeeded


# ----------------------------------------------------------------------
# Standalone confirmation check
# ----------------------------------------------------------------------

async def test_verify_transaction_succeeded_true_for_mined_success():
    handler = _rpc_handler(
        {
            "eth_getTransactionByHash": {"input": "0x"},
            "eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x1"},
        }
    )

    assert await _oracle(handler).verify_transaction_succeeded(TX_ID) is True


@pytest.mark.parametrize(
    "results",
    [
        {"eth_getTransactionByHash": None},
        {
            "eth_getTransactionByHash": {"input": "0x"},
            "eth_getTransactionReceipt": {"status": "0x0", "blockNumber": "0x1"},
        },
        {
            "eth_getTransactionByHash": {"input": "0x"},
            "eth_getTransactionReceipt": None,
        },
        {"eth_getTransactionByHash": lambda body: httpx.Response(500)},
    ],
    ids=["missing", "reverted", "pending", "unreachable"],
)
async def test_verify_transaction_succeeded_false_otherwise(results):
    assert await _oracle(_rpc_handler(results)).verify_transaction_succeeded(TX_ID) is False


# ----------------------------------------------------------------------
# JSON-RPC client
# ----------------------------------------------------------------------

async def test_client_surfaces_error_code():
    def error(body):
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": 4001, "message": "denied"}},
        )

    client = JsonRpcClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_rpc_handler({"x": error}))),
        endpoint=ENDPOINT,
        retry_seconds=0,
    )

    with pytest.raises(JsonRpcError) as excinfo:
        await client.call("x")

    assert excinfo.value.code == 4001
    assert excinfo.value.message == "denied"


async def test_client_rejects_envelope_without_result():
    client = JsonRpcClient(
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1})
            )
        ),
        endpoint=ENDPOINT,
        retry_seconds=0,
    )

    with pytest.raises(JsonRpcTransportError):
        await client.call("eth_chainId")


async def test_client_rejects_non_json_body():
    client = JsonRpcClient(
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, content=b"<html>")
            )
        ),
        endpoint=ENDPOINT,
        retry_seconds=0,
    )

    with pytest.raises(JsonRpcTransportError):
        await client.call("eth_chainId")


async def test_client_retries_transport_errors():
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x89"})

    client = JsonRpcClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(flaky)),
        endpoint=ENDPOINT,
        retry_seconds=10,
    )

    assert await client.call("eth_chainId") == "0x89"
    assert len(attempts) == 2


def test_hex_helpers():
    assert hex_to_int("0x4d2") == 1234
    assert hex_to_int(None) is None
    assert hex_to_bytes("0x") == b""
    assert hex_to_bytes(bytes_to_hex(b"\x00\xff")) == b"\x00\xff"

    with pytest.raises(ValueError):
        hex_to_int("1234")
