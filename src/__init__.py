"""Ledger Explorer - cross-domain entity resolution and aggregation for Core and EVM ledgers."""

__version__ = "0.1.0"
