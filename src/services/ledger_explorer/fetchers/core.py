"""
Core domain fetcher.

Turns Core info API responses into per-domain snapshots. The watermark is
the highest millisecond timestamp observed in the responses (fills,
funding, trades, clearinghouse time).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from src.common.cache import TieredCache, VolatilityTier
from src.common.telemetry import get_tracer

from ..adapters.core_api import cached_info
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
from ..core.parsing import as_float, as_int, max_or_none
from ..core.protocols import CoreDataProvider
from ..errors import PermanentProviderError

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

DAY_MS = 24 * 60 * 60 * 1000
# Spot balances below this USD value are dust
DUST_THRESHOLD_USD = 1.0
STABLE_SYMBOLS = frozenset({"USDC"})


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_perp_positions(state: dict[str, Any]) -> list[Position]:
    """Open perp positions from a clearinghouseState response."""
    positions = []
    for entry in state.get("assetPositions") or []:
        pos = entry.get("position") or {}
        szi = as_float(pos.get("szi"))
        if szi == 0:
            continue
        size = abs(szi)
        value = as_float(pos.get("positionValue"))
        leverage = pos.get("leverage") or {}
        positions.append(
            Position(
                domain=Domain.CORE,
                kind=PositionKind.PERP,
                market=str(pos.get("coin", "")).upper(),
                side="long" if szi > 0 else "short",
                size=size,
                value_usd=value,
                entry_price=as_float(pos.get("entryPx")) or None,
                mark_price=value / size if size else None,
                unrealized_pnl_usd=as_float(pos.get("unrealizedPnl")),
                margin_usd=as_float(pos.get("marginUsed")),
                leverage=as_float(leverage.get("value")) or None,
            )
        )
    return positions


def spot_prices(spot_meta_and_ctxs: Any) -> dict[int, float]:
    """Token index -> USD price, from spotMetaAndAssetCtxs."""
    if not isinstance(spot_meta_and_ctxs, list) or len(spot_meta_and_ctxs) < 2:
        return {}
    meta, ctxs = spot_meta_and_ctxs[0], spot_meta_and_ctxs[1]
    prices: dict[int, float] = {}
    for pair, ctx in zip(meta.get("universe") or [], ctxs or []):
        tokens = pair.get("tokens") or []
        if not tokens or not ctx:
            continue
        price = as_float(ctx.get("midPx")) or as_float(ctx.get("markPx"))
        prices.setdefault(tokens[0], price)
    return prices


def parse_spot_balances(spot_state: dict[str, Any], prices: dict[int, float]) -> list[Position]:
    """Non-dust spot balances valued at the pair price (stables at 1.0)."""
    positions = []
    for balance in spot_state.get("balances") or []:
        total = as_float(balance.get("total"))
        if total <= 0:
            continue
        coin = str(balance.get("coin", "")).upper()
        price = 1.0 if coin in STABLE_SYMBOLS else prices.get(as_int(balance.get("token"), -1), 0.0)
        value = total * price
        if value < DUST_THRESHOLD_USD:
            continue
        positions.append(
            Position(
                domain=Domain.CORE,
                kind=PositionKind.SPOT,
                market=coin,
                side="hold",
                size=total,
                value_usd=value,
                mark_price=price,
            )
        )
    return positions


class CoreFetcher:
    """
    Fetcher for the Core ledger.

    Each fetch issues its info requests concurrently. Reference data
    (spot metadata and prices) goes through the cache when one is given.
    """

    domain = Domain.CORE

    def __init__(
        self,
        core_api: CoreDataProvider,
        cache: TieredCache | None = None,
        lookback_days: int = 30,
        now_ms: Callable[[], int] = _now_ms,
    ):
        self._core_api = core_api
        self._cache = cache
        self._lookback_ms = lookback_days * DAY_MS
        self._now_ms = now_ms

    async def _spot_prices(self) -> dict[int, float]:
        ctxs = await cached_info(
            self._core_api, "spotMetaAndAssetCtxs", self._cache, VolatilityTier.MARKET
        )
        return spot_prices(ctxs)

    async def fetch_wallet(self, address: str) -> WalletSnapshot:
        with tracer.start_as_current_span("core.fetch_wallet"):
            start = self._now_ms() - self._lookback_ms
            state, spot_state, prices, fills, funding = await asyncio.gather(
                self._core_api.info("clearinghouseState", user=address),
                self._core_api.info("spotClearinghouseState", user=address),
                self._spot_prices(),
                self._core_api.info("userFillsByTime", user=address, startTime=start),
                self._core_api.info("userFunding", user=address, startTime=start),
            )
            state = _expect_dict(state, "clearinghouseState")
            perps = parse_perp_positions(state)
            spot = parse_spot_balances(_expect_dict(spot_state, "spotClearinghouseState"), prices)
            fills = fills or []
            funding = funding or []

            margin = state.get("marginSummary") or {}
            volume = sum(as_float(f.get("px")) * as_float(f.get("sz")) for f in fills)
            realized = sum(as_float(f.get("closedPnl")) - as_float(f.get("fee")) for f in fills)
            funding_pnl = sum(as_float((f.get("delta") or {}).get("usdc")) for f in funding)

            return WalletSnapshot(
                domain=Domain.CORE,
                watermark=_watermark(state, fills, funding),
                account_value_usd=as_float(margin.get("accountValue"))
                + sum(p.value_usd for p in spot),
                volume_usd=volume,
                realized_pnl_usd=realized,
                unrealized_pnl_usd=sum(p.unrealized_pnl_usd for p in perps),
                funding_pnl_usd=funding_pnl,
                trade_count=len(fills),
                positions=tuple(perps + spot),
            )

    async def fetch_positions(self, address: str) -> PositionsSnapshot:
        with tracer.start_as_current_span("core.fetch_positions"):
            start = self._now_ms() - self._lookback_ms
            state, spot_state, prices, funding = await asyncio.gather(
                self._core_api.info("clearinghouseState", user=address),
                self._core_api.info("spotClearinghouseState", user=address),
                self._spot_prices(),
                self._core_api.info("userFunding", user=address, startTime=start),
            )
            state = _expect_dict(state, "clearinghouseState")
            funding = funding or []
            positions = parse_perp_positions(state) + parse_spot_balances(
                _expect_dict(spot_state, "spotClearinghouseState"), prices
            )
            margin = state.get("marginSummary") or {}

            return PositionsSnapshot(
                domain=Domain.CORE,
                watermark=_watermark(state, [], funding),
                positions=tuple(positions),
                margin_used_usd=as_float(margin.get("totalMarginUsed")),
                funding_pnl_usd=sum(
                    as_float((f.get("delta") or {}).get("usdc")) for f in funding
                ),
            )

    async def fetch_token(self, identifier: str) -> TokenSnapshot:
        """
        Market context for a symbol or an EVM contract address.

        Perp markets take precedence over spot pairs. An identifier Core
        does not list yields an empty snapshot, not an error.
        """
        with tracer.start_as_current_span("core.fetch_token") as span:
            symbol = await self._symbol_for(identifier)
            span.set_attribute("core.symbol", symbol or "")
            if symbol is None:
                return TokenSnapshot(domain=Domain.CORE)

            perp_ctxs, spot_meta = await asyncio.gather(
                cached_info(self._core_api, "metaAndAssetCtxs", self._cache, VolatilityTier.MARKET),
                cached_info(self._core_api, "spotMetaAndAssetCtxs", self._cache, VolatilityTier.MARKET),
            )
            snapshot = _perp_token_fields(symbol, perp_ctxs) or _spot_token_fields(symbol, spot_meta)
            if snapshot is None:
                return TokenSnapshot(domain=Domain.CORE)

            coin = snapshot.pop("coin")
            trades = await self._core_api.info("recentTrades", coin=coin) or []
            cutoff = self._now_ms() - DAY_MS
            times = [as_int(t.get("time")) for t in trades]
            return TokenSnapshot(
                domain=Domain.CORE,
                watermark=max_or_none(times),
                symbol=symbol,
                recent_trade_count=sum(1 for t in times if t >= cutoff),
                **snapshot,
            )

    async def _symbol_for(self, identifier: str) -> str | None:
        if classify(identifier) is not SyntacticClass.EVM_ADDRESS:
            return identifier.upper()
        spot_meta = await cached_info(self._core_api, "spotMeta", self._cache, VolatilityTier.LONG)
        for token in (spot_meta or {}).get("tokens", []):
            contract = token.get("evmContract") or {}
            if str(contract.get("address", "")).lower() == identifier.lower():
                return str(token.get("name", "")).upper()
        return None


def _expect_dict(value: Any, request_type: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PermanentProviderError(Domain.CORE, f"unexpected {request_type} payload")
    return value


def _watermark(state: dict[str, Any], fills: list[Any], funding: list[Any]) -> int | None:
    times = [as_int(item.get("time")) for item in (*fills, *funding)]
    if state.get("time") is not None:
        times.append(as_int(state["time"]))
    return max_or_none([t for t in times if t > 0])


def _perp_token_fields(symbol: str, meta_and_ctxs: Any) -> dict[str, Any] | None:
    if not isinstance(meta_and_ctxs, list) or len(meta_and_ctxs) < 2:
        return None
    meta, ctxs = meta_and_ctxs[0], meta_and_ctxs[1]
    for asset, ctx in zip(meta.get("universe") or [], ctxs or []):
        if str(asset.get("name", "")).upper() != symbol:
            continue
        mark = as_float(ctx.get("markPx"))
        return {
            "coin": asset.get("name"),
            "price_usd": mark or None,
            "volume_24h_usd": as_float(ctx.get("dayNtlVlm")),
            "funding_rate": as_float(ctx.get("funding")),
            "open_interest_usd": as_float(ctx.get("openInterest")) * mark,
        }
    return None


def _spot_token_fields(symbol: str, spot_meta_and_ctxs: Any) -> dict[str, Any] | None:
    if not isinstance(spot_meta_and_ctxs, list) or len(spot_meta_and_ctxs) < 2:
        return None
    meta, ctxs = spot_meta_and_ctxs[0], spot_meta_and_ctxs[1]
    token = next(
        (t for t in meta.get("tokens") or [] if str(t.get("name", "")).upper() == symbol),
        None,
    )
    if token is None:
        return None

    contract = (token.get("evmContract") or {}).get("address")
    fields: dict[str, Any] = {
        "coin": symbol,
        "name": token.get("fullName"),
        "contract_address": contract.lower() if contract else None,
    }
    for pair, ctx in zip(meta.get("universe") or [], ctxs or []):
        tokens = pair.get("tokens") or []
        if tokens and tokens[0] == token.get("index") and ctx:
            # Spot pairs trade under their pair name (e.g. "@107")
            fields["coin"] = pair.get("name", symbol)
            fields["price_usd"] = as_float(ctx.get("midPx")) or as_float(ctx.get("markPx")) or None
            fields["volume_24h_usd"] = as_float(ctx.get("dayNtlVlm"))
            break
    return fields
