"""
Ledger Explorer Service - CLI Entry Point

Usage:
    python -m src.services.ledger_explorer [options] [serve|resolve|aggregate ...]

Examples:
    # Serve the HTTP API (default command)
    python -m src.services.ledger_explorer --port 8086

    # Resolve one identifier and print the result as JSON
    python -m src.services.ledger_explorer --no-redis resolve 0x5c5c...5c

    # Merged positions view for one wallet, Core only
    python -m src.services.ledger_explorer aggregate positions 0xabab...ab --domains core
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import BaseModel

from src.common.logging import configure_sanitized_logging
from src.common.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry

from .config import ExplorerServiceConfig
from .core.models import DomainHint, ViewKind, parse_domains
from .errors import InvalidInputError, TotalFailureError

logger = logging.getLogger(__name__)

# Exit codes for the one-shot commands
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def setup_logging(level: str) -> None:
    """Log to stderr so one-shot commands keep stdout for JSON."""
    configure_sanitized_logging(
        level=getattr(logging, level.upper()),
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse global options and an optional command (serve when omitted)."""
    parser = argparse.ArgumentParser(
        prog="ledger-explorer",
        description="Cross-domain explorer for the Core ledger and its EVM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default=None, help="HTTP bind host (default: from config)")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (default: from config)")
    parser.add_argument(
        "--postgres-url",
        default=None,
        help="Event store URL (enables the store)",
    )
    parser.add_argument(
        "--redis-url",
        default=None,
        help="Redis URL (enables the Redis cache level)",
    )
    parser.add_argument("--no-redis", action="store_true", help="Memory cache only")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.add_parser("serve", help="Serve the HTTP API")

    resolve = commands.add_parser("resolve", help="Resolve an identifier and print JSON")
    resolve.add_argument("query", help="Address, tx hash, block number or symbol")

    aggregate = commands.add_parser("aggregate", help="Build a merged view and print JSON")
    aggregate.add_argument("view", choices=[v.value for v in ViewKind])
    aggregate.add_argument("canonical_id", help="Wallet address, token contract or symbol")
    aggregate.add_argument(
        "--domains",
        nargs="+",
        choices=[h.value for h in DomainHint],
        default=None,
        help="Domains to query (default: both)",
    )

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "serve"
    return args


def build_config(args: argparse.Namespace) -> ExplorerServiceConfig:
    """Environment-backed config with CLI flags layered on top."""
    overrides: dict[str, object] = {"log_level": args.log_level.upper()}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.postgres_url:
        overrides.update(postgres_url=args.postgres_url, postgres_enabled=True)
    if args.redis_url:
        overrides.update(redis_url=args.redis_url, redis_enabled=True)
    if args.no_redis:
        overrides["redis_enabled"] = False
    return ExplorerServiceConfig(**overrides)


async def run_command(config: ExplorerServiceConfig, args: argparse.Namespace) -> int:
    """Run resolve or aggregate once against live upstreams and print the JSON result."""
    from .wiring import build_services

    services = await build_services(config)
    try:
        result: BaseModel
        if args.command == "resolve":
            result = await services.resolver.resolve(args.query)
        else:
            result = await services.aggregator.aggregate(
                args.canonical_id, parse_domains(args.domains), ViewKind(args.view)
            )
    except InvalidInputError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INVALID_INPUT
    except TotalFailureError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    finally:
        await services.aclose()

    print(result.model_dump_json(indent=2))
    return EXIT_OK


async def run_http(config: ExplorerServiceConfig) -> None:
    """Run HTTP server."""
    from .transports.http import run_http_server

    await run_http_server(config)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)
    config = build_config(args)

    if config.telemetry_enabled:
        init_telemetry(
            TelemetryConfig(
                service_name=config.server_name,
                service_version=config.server_version,
                environment=config.environment,
                otlp_endpoint=config.otlp_endpoint,
            )
        )

    exit_code = EXIT_OK
    try:
        if args.command == "serve":
            logger.info(f"Starting {config.server_name} on {config.host}:{config.port}")
            asyncio.run(run_http(config))
        else:
            exit_code = asyncio.run(run_command(config, args))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        exit_code = EXIT_FAILURE
    finally:
        if config.telemetry_enabled:
            shutdown_telemetry()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
