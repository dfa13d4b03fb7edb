"""Adapters for upstream providers, the event store and the cache."""

from .core_api import CoreInfoClient
from .evm_rpc import EvmRpcClient

__all__ = ["CoreInfoClient", "EvmRpcClient"]
