"""
EVM domain fetcher.

Every snapshot carries the eth_blockNumber observed alongside it as its
watermark.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.common.cache import TieredCache, VolatilityTier
from src.common.telemetry import get_tracer

from ..adapters.core_api import cached_info
from ..adapters.evm_rpc import DECIMALS_SELECTOR, TOTAL_SUPPLY_SELECTOR, hex_to_int
from ..core.classifier import classify
from ..core.models import (
    Domain,
    Position,
    PositionKind,
    PositionsSnapshot,
    SyntacticClass,
    TokenSnapshot,
    WalletSnapshot,
)
from ..core.parsing import as_float
from ..core.protocols import CoreDataProvider, EventStore, EvmDataProvider
from ..errors import ProviderError

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

NATIVE_SYMBOL = "HYPE"
WEI_PER_NATIVE = 10**18
# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def parse_lending_rows(rows: list[dict[str, Any]]) -> list[Position]:
    """Indexed lending rows; borrows carry negative value."""
    positions = []
    for row in rows:
        borrowed = str(row.get("position_type", "")).lower().startswith("borrow")
        value = abs(as_float(row.get("value_usd")))
        positions.append(
            Position(
                domain=Domain.EVM,
                kind=PositionKind.LENDING,
                market=str(row.get("asset") or "UNKNOWN").upper(),
                side="borrow" if borrowed else "supply",
                size=as_float(row.get("amount")),
                value_usd=-value if borrowed else value,
                protocol=row.get("protocol"),
            )
        )
    return positions


class EvmFetcher:
    """
    Fetcher for the EVM chain.

    Optional collaborators:
    - store: indexed lending positions
    - core_api: native token price (allMids) and symbol -> contract mapping
      (spotMeta). A failing price lookup leaves the native balance unvalued
      rather than failing the EVM branch.
    """

    domain = Domain.EVM

    def __init__(
        self,
        rpc: EvmDataProvider,
        store: EventStore | None = None,
        core_api: CoreDataProvider | None = None,
        cache: TieredCache | None = None,
        transfer_window_blocks: int = 1000,
    ):
        self._rpc = rpc
        self._store = store
        self._core_api = core_api
        self._cache = cache
        self._transfer_window = transfer_window_blocks

    async def _native_price(self) -> float | None:
        if self._core_api is None:
            return None
        try:
            mids = await cached_info(self._core_api, "allMids", self._cache, VolatilityTier.MARKET)
        except ProviderError as e:
            logger.warning(f"Native price unavailable, balance left unvalued: {e}")
            return None
        price = as_float((mids or {}).get(NATIVE_SYMBOL))
        return price or None

    async def _lending(self, address: str) -> list[Position]:
        if self._store is None:
            return []
        return parse_lending_rows(await self._store.lending_positions(address))

    async def _holdings(self, address: str) -> tuple[int, list[Position]]:
        balance_hex, head, price, lending = await asyncio.gather(
            self._rpc.call("eth_getBalance", [address, "latest"]),
            self._rpc.block_number(),
            self._native_price(),
            self._lending(address),
        )
        positions = list(lending)
        balance = hex_to_int(balance_hex) / WEI_PER_NATIVE
        if balance > 0:
            positions.insert(
                0,
                Position(
                    domain=Domain.EVM,
                    kind=PositionKind.SPOT,
                    market=NATIVE_SYMBOL,
                    side="hold",
                    size=balance,
                    value_usd=balance * price if price else 0.0,
                    mark_price=price,
                ),
            )
        return head, positions

    async def fetch_wallet(self, address: str) -> WalletSnapshot:
        with tracer.start_as_current_span("evm.fetch_wallet"):
            (head, positions), nonce_hex = await asyncio.gather(
                self._holdings(address),
                self._rpc.call("eth_getTransactionCount", [address, "latest"]),
            )
            return WalletSnapshot(
                domain=Domain.EVM,
                watermark=head,
                account_value_usd=sum(p.value_usd for p in positions),
                trade_count=hex_to_int(nonce_hex),
                positions=tuple(positions),
            )

    async def fetch_positions(self, address: str) -> PositionsSnapshot:
        with tracer.start_as_current_span("evm.fetch_positions"):
            head, positions = await self._holdings(address)
            return PositionsSnapshot(
                domain=Domain.EVM,
                watermark=head,
                positions=tuple(positions),
            )

    async def fetch_token(self, identifier: str) -> TokenSnapshot:
        """
        ERC-20 facts for a contract address or a symbol Core maps to one.

        Recent activity is the number of Transfer logs in the last
        transfer_window_blocks blocks.
        """
        with tracer.start_as_current_span("evm.fetch_token") as span:
            contract, head = await asyncio.gather(
                self._contract_for(identifier),
                self._rpc.block_number(),
            )
            span.set_attribute("evm.contract", contract or "")
            if contract is None:
                return TokenSnapshot(domain=Domain.EVM, watermark=head)

            decimals, supply_raw, logs = await asyncio.gather(
                self._rpc.erc20_call(contract, DECIMALS_SELECTOR),
                self._rpc.erc20_call(contract, TOTAL_SUPPLY_SELECTOR),
                self._rpc.call(
                    "eth_getLogs",
                    [
                        {
                            "address": contract,
                            "topics": [TRANSFER_TOPIC],
                            "fromBlock": hex(max(0, head - self._transfer_window)),
                            "toBlock": hex(head),
                        }
                    ],
                ),
            )
            if decimals == 0 and supply_raw == 0:
                # Not an ERC-20 contract
                return TokenSnapshot(domain=Domain.EVM, watermark=head)

            return TokenSnapshot(
                domain=Domain.EVM,
                watermark=head,
                contract_address=contract,
                decimals=decimals,
                total_supply=supply_raw / (10**decimals),
                recent_trade_count=len(logs or []),
            )

    async def _contract_for(self, identifier: str) -> str | None:
        if classify(identifier) is SyntacticClass.EVM_ADDRESS:
            return identifier.lower()
        if self._core_api is None:
            return None
        spot_meta = await cached_info(self._core_api, "spotMeta", self._cache, VolatilityTier.LONG)
        for token in (spot_meta or {}).get("tokens", []):
            if str(token.get("name", "")).upper() == identifier.upper():
                address = (token.get("evmContract") or {}).get("address")
                return address.lower() if address else None
        return None
