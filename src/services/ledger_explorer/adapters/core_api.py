"""
Core ledger API client.

Thin httpx wrapper over the info and explorer endpoints. Every call is a
single attempt; retry and deadlines belong to the resolver and the
aggregator.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.common.cache import TieredCache, VolatilityTier
from src.common.telemetry import get_tracer

from ..core.models import Domain
from ..core.protocols import CoreDataProvider
from ..errors import PermanentProviderError, classify_http_error

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class CoreInfoClient:
    """
    Client for the Core info API and block explorer API.

    Both endpoints take a JSON body with a "type" field; parameters are
    passed through under their wire names (user, startTime, hash, ...).
    """

    def __init__(
        self,
        info_url: str,
        explorer_url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            info_url: Info endpoint (e.g., "https://api.hyperliquid.xyz/info")
            explorer_url: Explorer endpoint (e.g., "https://rpc.hyperliquid.xyz/explorer")
            timeout_seconds: Per-request HTTP timeout
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._info_url = info_url
        self._explorer_url = explorer_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport

        # HTTP client (created lazily)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout_seconds),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, body: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(url, json=body)
            if response.status_code != 404:
                response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise classify_http_error(e, Domain.CORE) from e

    async def info(self, request_type: str, **params: Any) -> Any:
        """
        POST an info request.

        Returns:
            Decoded JSON body

        Raises:
            TransientProviderError: Timeout, transport error, 429 or 5xx
            PermanentProviderError: Other HTTP errors or an undecodable body
        """
        with tracer.start_as_current_span("core.info") as span:
            span.set_attribute("core.request_type", request_type)
            response = await self._post(self._info_url, {"type": request_type, **params})
            if response.status_code == 404:
                raise PermanentProviderError(Domain.CORE, f"info type {request_type} not served")
            try:
                return response.json()
            except ValueError as e:
                raise PermanentProviderError(
                    Domain.CORE, f"invalid JSON from info {request_type}"
                ) from e

    async def explorer(self, request_type: str, **params: Any) -> Any | None:
        """
        POST an explorer request.

        Returns the object under the <request_type> key (or the body minus
        its "type" field), or None when the entity is unknown.
        """
        with tracer.start_as_current_span("core.explorer") as span:
            span.set_attribute("core.request_type", request_type)
            response = await self._post(self._explorer_url, {"type": request_type, **params})
            if response.status_code == 404:
                span.set_attribute("core.found", False)
                return None
            try:
                data = response.json()
            except ValueError as e:
                raise PermanentProviderError(
                    Domain.CORE, f"invalid JSON from explorer {request_type}"
                ) from e

            if not isinstance(data, dict):
                span.set_attribute("core.found", False)
                return None

            payload = data.get(request_type)
            if payload is None and data.get("type") == request_type:
                # Unwrapped form: {"type": "txDetails", "tx": {...}}
                payload = {k: v for k, v in data.items() if k != "type" and v}
            span.set_attribute("core.found", bool(payload))
            return payload or None


async def cached_info(
    core_api: CoreDataProvider,
    request_type: str,
    cache: TieredCache | None,
    tier: VolatilityTier,
) -> Any:
    """Info request for parameterless reference data (meta, spotMeta, ...)."""
    if cache is None:
        return await core_api.info(request_type)
    return await cache.get_or_compute(
        f"core:info:{request_type}",
        tier,
        lambda: core_api.info(request_type),
    )
