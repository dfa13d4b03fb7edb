"""Per-domain fetchers for wallet, positions and token views."""

from .core import CoreFetcher
from .evm import EvmFetcher

__all__ = ["CoreFetcher", "EvmFetcher"]
