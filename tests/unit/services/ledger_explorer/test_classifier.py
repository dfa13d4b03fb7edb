"""
Tests for identifier classification and canonicalization.
"""

import pytest

from src.services.ledger_explorer.core.classifier import (
    MAX_BLOCK_HEIGHT,
    block_height,
    canonicalize,
    classify,
    guess_domain,
    is_symbol,
)
from src.services.ledger_explorer.core.models import DomainHint, SyntacticClass

ADDRESS = "0x" + "aB" * 20
HASH = "0x" + "Cd" * 32


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (ADDRESS, SyntacticClass.EVM_ADDRESS),
            (HASH, SyntacticClass.TX_HASH),
            ("12345", SyntacticClass.BLOCK_NUMBER),
            ("0", SyntacticClass.BLOCK_NUMBER),
            ("BTC", SyntacticClass.UNKNOWN),
            ("0x" + "ab" * 19, SyntacticClass.UNKNOWN),  # 38 hex chars
            ("0x" + "zz" * 20, SyntacticClass.UNKNOWN),
            ("", SyntacticClass.UNKNOWN),
            ("-5", SyntacticClass.UNKNOWN),
        ],
    )
    def test_shapes(self, raw, expected):
        assert classify(raw) is expected

    def test_whitespace_is_ignored(self):
        assert classify(f"  {ADDRESS}\n") is SyntacticClass.EVM_ADDRESS

    def test_deterministic(self):
        assert {classify(HASH) for _ in range(5)} == {SyntacticClass.TX_HASH}


class TestCanonicalize:
    """Tests for canonicalize()."""

    def test_address_lowercased(self):
        assert canonicalize(ADDRESS) == ADDRESS.lower()

    def test_hash_lowercased(self):
        assert canonicalize(HASH, SyntacticClass.TX_HASH) == HASH.lower()

    def test_block_strips_leading_zeros(self):
        assert canonicalize("000123") == "123"

    def test_block_zero(self):
        assert canonicalize("0000") == "0"

    def test_very_long_block_number(self):
        digits = "1" * 5000
        assert canonicalize(digits) == digits

    def test_symbol_uppercased_and_suffix_removed(self):
        assert canonicalize(" eth-perp ") == "ETH"
        assert canonicalize("purr-spot") == "PURR"
        assert canonicalize("hype") == "HYPE"

    def test_idempotent(self):
        once = canonicalize(ADDRESS)
        assert canonicalize(once) == once


class TestSymbols:
    """Tests for is_symbol() and guess_domain()."""

    @pytest.mark.parametrize("text", ["BTC", "kPEPE", "USDT0", "A"])
    def test_valid_symbols(self, text):
        assert is_symbol(text)

    @pytest.mark.parametrize("text", ["", "1INCH", "BTC/USD", "A" * 21, "hello world"])
    def test_invalid_symbols(self, text):
        assert not is_symbol(text)

    @pytest.mark.parametrize("cls", list(SyntacticClass))
    def test_guess_domain_defers_to_probes(self, cls):
        assert guess_domain(cls) is DomainHint.BOTH


class TestBlockHeight:
    """Tests for block_height()."""

    def test_in_range(self):
        assert block_height("255") == 255

    def test_largest_height(self):
        assert block_height(str(MAX_BLOCK_HEIGHT)) == MAX_BLOCK_HEIGHT

    @pytest.mark.parametrize("digits", [str(MAX_BLOCK_HEIGHT + 1), "9" * 20, "1" * 5000])
    def test_out_of_range(self, digits):
        assert block_height(digits) is None
