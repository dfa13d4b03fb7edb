"""
Identifier Classifier

Pure functions that decide what an identifier looks like before any
ledger is asked about it.
"""

from __future__ import annotations

import re

from .models import DomainHint, SyntacticClass

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TX_HASH = re.compile(r"^0x[0-9a-fA-F]{64}$")
_BLOCK_NUMBER = re.compile(r"^[0-9]+$")
_SYMBOL = re.compile(r"^[A-Za-z][A-Za-z0-9]{0,19}$")
_MARKET_SUFFIX = re.compile(r"-(PERP|SPOT)$")

# Neither ledger stores heights beyond a signed 64-bit integer
MAX_BLOCK_HEIGHT = 2**63 - 1


def classify(raw: str) -> SyntacticClass:
    """
    Classify an identifier by shape.

    Total and deterministic; surrounding whitespace is ignored.
    """
    text = raw.strip()
    if _EVM_ADDRESS.match(text):
        return SyntacticClass.EVM_ADDRESS
    if _TX_HASH.match(text):
        return SyntacticClass.TX_HASH
    if _BLOCK_NUMBER.match(text):
        return SyntacticClass.BLOCK_NUMBER
    return SyntacticClass.UNKNOWN


def guess_domain(syntactic_class: SyntacticClass) -> DomainHint:
    # Both ledgers share address, hash and height formats, so probing decides.
    return DomainHint.BOTH


def canonicalize(raw: str, syntactic_class: SyntacticClass | None = None) -> str:
    """
    Normalize an identifier into the form used for lookups and cache keys.

    Addresses and hashes are lower-cased, block heights lose leading
    zeros, anything else is treated as a symbol.
    """
    text = raw.strip()
    if syntactic_class is None:
        syntactic_class = classify(text)

    if syntactic_class in (SyntacticClass.EVM_ADDRESS, SyntacticClass.TX_HASH):
        return text.lower()
    if syntactic_class is SyntacticClass.BLOCK_NUMBER:
        return text.lstrip("0") or "0"
    return _MARKET_SUFFIX.sub("", text.upper())


def is_symbol(text: str) -> bool:
    """True for 1-20 alphanumerics starting with a letter."""
    return bool(_SYMBOL.match(text))


def block_height(canonical_id: str) -> int | None:
    """Height for a canonical block number, or None when no ledger can hold it."""
    if len(canonical_id) > len(str(MAX_BLOCK_HEIGHT)):
        return None
    height = int(canonical_id)
    return height if height <= MAX_BLOCK_HEIGHT else None
