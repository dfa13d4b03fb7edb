"""
FastAPI HTTP Transport for the Ledger Explorer Service

Provides REST endpoints:
- /health - Liveness probe
- /ready - Readiness probe (checks DB, cache)
- /api/resolve - Resolve an identifier across both ledgers
- /api/aggregate/{view} - Merged wallet, positions or token view
- /api/stats - Cache statistics

NOTE: Do NOT add `from __future__ import annotations` to this file.
PEP 563 breaks FastAPI's runtime introspection for parameter sources.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...adapters.cache import check_redis_health
from ...adapters.database import check_db_health
from ...config import ExplorerServiceConfig
from ...core.aggregator import CrossDomainAggregator
from ...core.models import ViewKind, parse_domains
from ...core.resolver import EntityResolver
from ...errors import InvalidInputError, TotalFailureError
from ...wiring import build_services

logger = logging.getLogger(__name__)


# Request models
class ResolveRequest(BaseModel):
    """Request body for /api/resolve endpoint."""

    query: str = Field(..., min_length=1, max_length=500)


class AggregateRequest(BaseModel):
    """Request body for /api/aggregate/{view} endpoint."""

    canonical_id: str = Field(..., min_length=1, max_length=200)
    domains: list[str] | None = Field(
        None,
        description="Subset of core, evm (or both); omitted means every domain",
    )


def create_app(
    config: ExplorerServiceConfig | None = None,
    resolver: EntityResolver | None = None,
    aggregator: CrossDomainAggregator | None = None,
) -> FastAPI:
    """
    Create a FastAPI application for the ledger explorer service.

    Args:
        config: Service configuration
        resolver: Pre-built resolver (skips building one at startup)
        aggregator: Pre-built aggregator (skips building one at startup)

    Returns:
        FastAPI application instance
    """
    _config = config or ExplorerServiceConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info(f"Starting ledger explorer service: {_config.server_name}")
        services = None
        if app.state.resolver is None or app.state.aggregator is None:
            services = await build_services(
                _config, resolver=app.state.resolver, aggregator=app.state.aggregator
            )
            app.state.resolver = services.resolver
            app.state.aggregator = services.aggregator
            app.state.cache = services.cache
            app.state.db_pool = services.db_pool
            app.state.redis_client = services.redis_client
        logger.info("Ledger explorer service initialized")
        yield

        logger.info("Shutting down ledger explorer service")
        if services is not None:
            await services.aclose()
        logger.info("Ledger explorer service shut down")

    app = FastAPI(
        title="Ledger Explorer Service",
        description="Cross-domain entity resolution and aggregation for the Core ledger and EVM",
        version=_config.server_version,
        lifespan=lifespan,
    )

    app.state.config = _config
    app.state.resolver = resolver
    app.state.aggregator = aggregator
    app.state.db_pool = None
    app.state.redis_client = None
    app.state.cache = None

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_input", "detail": str(exc)},
        )

    @app.exception_handler(TotalFailureError)
    async def total_failure_handler(request: Request, exc: TotalFailureError) -> JSONResponse:
        logger.error(f"Total failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={
                "error": "total_failure",
                "detail": str(exc),
                "failures": {d.value: str(e) for d, e in exc.failures.items()},
            },
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {
            "status": "healthy",
            "service": _config.server_name,
            "version": _config.server_version,
        }

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """Readiness probe - checks dependencies."""
        checks: dict[str, Any] = {}
        all_ready = app.state.resolver is not None and app.state.aggregator is not None

        # Check database
        if app.state.db_pool is not None:
            db_health = await check_db_health(app.state.db_pool)
            checks["database"] = db_health
            if not db_health.get("connected"):
                all_ready = False
        else:
            checks["database"] = {"enabled": False}

        # Check Redis (optional)
        if app.state.redis_client is not None:
            # Redis failure is not critical
            checks["redis"] = await check_redis_health(app.state.redis_client)
        else:
            checks["redis"] = {"enabled": False}

        status = "ready" if all_ready else "not_ready"
        return JSONResponse(
            content={"status": status, "checks": checks},
            status_code=200 if all_ready else 503,
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with service info."""
        return {
            "name": _config.server_name,
            "version": _config.server_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "resolve": "/api/resolve",
                "aggregate": "/api/aggregate/{wallet|positions|token}",
                "stats": "/api/stats",
            },
        }

    @app.post("/api/resolve")
    async def resolve_endpoint(body: ResolveRequest) -> JSONResponse:
        """Resolve an identifier to its candidate entities."""
        result = await app.state.resolver.resolve(body.query)
        return JSONResponse(content=result.model_dump(mode="json"))

    @app.post("/api/aggregate/{view}")
    async def aggregate_endpoint(view: ViewKind, body: AggregateRequest) -> JSONResponse:
        """Build a merged view across the requested domains."""
        domains = parse_domains(body.domains)
        result = await app.state.aggregator.aggregate(body.canonical_id, domains, view)
        return JSONResponse(content=result.model_dump(mode="json"))

    @app.get("/api/stats")
    async def get_stats() -> JSONResponse:
        """Get service statistics."""
        cache = app.state.cache
        if cache is None:
            return JSONResponse(content={"cache": {"enabled": False}})
        return JSONResponse(
            content={
                "cache": {
                    **cache.stats.to_dict(),
                    "l1_size": cache.memory_size,
                    "redis_enabled": cache.redis_enabled,
                },
            }
        )

    return app


async def run_http_server(config: ExplorerServiceConfig | None = None) -> None:
    """
    Run the HTTP server.

    Args:
        config: Service configuration
    """
    import uvicorn

    _config = config or ExplorerServiceConfig()
    app = create_app(_config)

    logger.info(f"Starting HTTP server on {_config.host}:{_config.port}")

    server_config = uvicorn.Config(
        app,
        host=_config.host,
        port=_config.port,
        log_level=_config.log_level.lower(),
    )
    server = uvicorn.Server(server_config)
    await server.serve()
