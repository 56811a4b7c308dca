"""
Minimal async JSON-RPC 2.0 transport.

Shared by the chain oracle (read-only ledger queries) and the wallet
client (signing and transaction submission). Transport-level failures
are retried with exponential backoff; JSON-RPC error objects are
surfaced to the caller as ``JsonRpcError`` without retrying.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_exponential,
)

logger = logging.getLogger("walletsign.jsonrpc")


class JsonRpcError(RuntimeError):
    """An error object returned by the remote endpoint."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class JsonRpcTransportError(RuntimeError):
    """The endpoint was unreachable or answered with a malformed envelope."""


class JsonRpcClient:
    """
    JSON-RPC client bound to one endpoint.

    The ``httpx.AsyncClient`` is owned by the caller and may be shared.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        endpoint: str,
        retry_seconds: float = 20.0,
    ):
        self.client = http_client
        self.endpoint = endpoint
        self.retry_seconds = retry_seconds
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        """
        Invoke ``method`` and return its ``result`` member.

        Raises:
            JsonRpcError: the endpoint returned an error object.
            JsonRpcTransportError: network failure after retries, HTTP
                error status, or a malformed response envelope.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.retry_seconds),
                wait=wait_exponential(min=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self._post(method, params or [])
        except httpx.TransportError as exc:
            logger.warning(
                "jsonrpc_transport_failed",
                extra={"method": method, "error_type": type(exc).__name__},
            )
            raise JsonRpcTransportError(
                f"{method} failed: endpoint unreachable ({exc})"
            ) from exc

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "jsonrpc_http_error",
                extra={
                    "method": method,
                    "status_code": response.status_code,
                },
            )
            raise JsonRpcTransportError(
                f"{method} failed: HTTP {response.status_code}"
            ) from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise JsonRpcTransportError(
                f"{method} returned a non-JSON response"
            ) from exc

        if not isinstance(envelope, dict):
            raise JsonRpcTransportError(f"{method} returned a malformed envelope")

        error = envelope.get("error")
        if error is not None:
            if not isinstance(error, dict):
                raise JsonRpcTransportError(f"{method} returned a malformed error")
            raise JsonRpcError(
                code=int(error.get("code", 0)),
                message=str(error.get("message", "")),
                data=error.get("data"),
            )

        if "result" not in envelope:
            raise JsonRpcTransportError(f"{method} response is missing 'result'")

        return envelope["result"]

    async def _post(self, method: str, params: list) -> httpx.Response:
        return await self.client.post(
            self.endpoint,
            json={
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": method,
                "params": params,
            },
            headers={"Content-Type": "application/json"},
        )


# ----------------------------------------------------------------------
# Hex quantity helpers
# ----------------------------------------------------------------------

def hex_to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"not a hex quantity: {value!r}")
    return int(value, 16)


def hex_to_bytes(value: Any) -> bytes:
    if value in (None, "0x", ""):
        return b""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"not hex data: {value!r}")
    return bytes.fromhex(value[2:])


def bytes_to_hex(data: bytes) -> str:
    return "0x" + data.hex()
