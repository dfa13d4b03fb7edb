"""Domain probes: one per ledger."""

from .core import CORE_MIN_BLOCK_HEIGHT, CoreProbe
from .evm import EvmProbe

__all__ = ["CORE_MIN_BLOCK_HEIGHT", "CoreProbe", "EvmProbe"]
