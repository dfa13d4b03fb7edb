"""
EVM JSON-RPC client.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from src.common.telemetry import get_tracer

from ..core.models import Domain
from ..errors import PermanentProviderError, classify_http_error

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# ERC-20 selectors
BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"
TOTAL_SUPPLY_SELECTOR = "0x18160ddd"


def hex_to_int(value: str | None) -> int:
    """Decode a 0x-prefixed quantity; empty results decode to 0."""
    if not value or value == "0x":
        return 0
    return int(value, 16)


class EvmRpcClient:
    """
    JSON-RPC 2.0 client over HTTP.

    Single attempt per call. JSON-RPC error objects are permanent
    failures; HTTP-level failures are classified by status.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._rpc_url = rpc_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._ids = itertools.count(1)

        # HTTP client (created lazily)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        """
        Invoke a JSON-RPC method.

        Returns:
            The "result" field; None when the node has no such object

        Raises:
            TransientProviderError: Timeout, transport error, 429 or 5xx
            PermanentProviderError: JSON-RPC error object or bad response
        """
        with tracer.start_as_current_span("evm.rpc") as span:
            span.set_attribute("evm.method", method)
            body = {
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": method,
                "params": list(params),
            }

            client = await self._get_client()
            try:
                response = await client.post(self._rpc_url, json=body)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise classify_http_error(e, Domain.EVM) from e
            except ValueError as e:
                raise PermanentProviderError(Domain.EVM, f"invalid JSON from {method}") from e

            if not isinstance(data, dict):
                raise PermanentProviderError(Domain.EVM, f"unexpected response to {method}")

            error = data.get("error")
            if error:
                message = error.get("message", error) if isinstance(error, dict) else error
                span.set_attribute("evm.error", str(message))
                raise PermanentProviderError(Domain.EVM, f"{method}: {message}")

            return data.get("result")

    async def block_number(self) -> int:
        """Current head height."""
        return hex_to_int(await self.call("eth_blockNumber"))

    async def erc20_call(self, contract: str, selector: str, argument: str | None = None) -> int:
        """eth_call an ERC-20 view taking at most one address argument."""
        data = selector
        if argument is not None:
            data += argument.lower().removeprefix("0x").rjust(64, "0")
        result = await self.call("eth_call", [{"to": contract, "data": data}, "latest"])
        return hex_to_int(result)
