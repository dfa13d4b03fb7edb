"""
Ledger Explorer Service

Resolves identifiers across the Core ledger and the EVM chain, and builds
merged wallet, positions and token views annotated with consistency
metadata.

Usage:
    # As a service
    python -m src.services.ledger_explorer --port 8086

    # One-shot lookup
    python -m src.services.ledger_explorer resolve 0xabc...

    # Programmatic
    from src.services.ledger_explorer import ExplorerServiceConfig, build_services

    services = await build_services(ExplorerServiceConfig())
    result = await services.resolver.resolve("0xabc...")
"""

__version__ = "0.1.0"

from .config import ExplorerServiceConfig
from .core.aggregator import CrossDomainAggregator
from .core.models import Domain, ResolutionResult, UnifiedView
from .core.resolver import EntityResolver
from .errors import (
    AggregationFailedError,
    ExplorerError,
    InvalidInputError,
    ResolutionFailedError,
)
from .wiring import ExplorerServices, build_services

__all__ = [
    "AggregationFailedError",
    "CrossDomainAggregator",
    "Domain",
    "EntityResolver",
    "ExplorerError",
    "ExplorerServiceConfig",
    "ExplorerServices",
    "InvalidInputError",
    "ResolutionFailedError",
    "ResolutionResult",
    "UnifiedView",
    "build_services",
]
