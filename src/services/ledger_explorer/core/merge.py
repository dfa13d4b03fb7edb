"""
Cross-domain merge functions.

Pure and commutative: snapshots are ordered by domain priority before
merging, so the result does not depend on which branch finished first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from .models import (
    DOMAIN_PRIORITY,
    Position,
    PositionBreakdown,
    PositionKind,
    PositionsSnapshot,
    PositionsView,
    TokenSnapshot,
    TokenView,
    WalletSnapshot,
    WalletView,
)

S = TypeVar("S", WalletSnapshot, PositionsSnapshot, TokenSnapshot)


def _ordered(snapshots: Iterable[S]) -> list[S]:
    return sorted(snapshots, key=lambda s: DOMAIN_PRIORITY.index(s.domain))


def dedupe_positions(positions: Iterable[Position]) -> tuple[Position, ...]:
    """
    Drop repeated positions by domain-qualified key, keeping the first,
    then order by absolute USD value.
    """
    seen: dict[str, Position] = {}
    for position in positions:
        seen.setdefault(position.dedupe_key, position)
    return tuple(sorted(seen.values(), key=lambda p: abs(p.value_usd), reverse=True))


def merge_wallet(address: str, snapshots: Sequence[WalletSnapshot]) -> WalletView:
    ordered = _ordered(snapshots)
    realized = sum(s.realized_pnl_usd for s in ordered)
    unrealized = sum(s.unrealized_pnl_usd for s in ordered)
    funding = sum(s.funding_pnl_usd for s in ordered)

    return WalletView(
        address=address,
        total_value_usd=sum(s.account_value_usd for s in ordered),
        total_volume_usd=sum(s.volume_usd for s in ordered),
        realized_pnl_usd=realized,
        unrealized_pnl_usd=unrealized,
        funding_pnl_usd=funding,
        total_pnl_usd=realized + unrealized + funding,
        trade_count=sum(s.trade_count for s in ordered),
        positions=dedupe_positions(p for s in ordered for p in s.positions),
        value_by_domain={s.domain: s.account_value_usd for s in ordered},
        active_domains=tuple(
            s.domain
            for s in ordered
            if s.positions or s.trade_count or s.account_value_usd
        ),
    )


def merge_positions(address: str, snapshots: Sequence[PositionsSnapshot]) -> PositionsView:
    ordered = _ordered(snapshots)
    positions = dedupe_positions(p for s in ordered for p in s.positions)
    total = sum(p.value_usd for p in positions)

    breakdown = []
    for kind in PositionKind:
        of_kind = [p for p in positions if p.kind is kind]
        value = sum(p.value_usd for p in of_kind)
        breakdown.append(
            PositionBreakdown(
                kind=kind,
                count=len(of_kind),
                value_usd=value,
                percentage=(value / total * 100) if total > 0 else 0.0,
            )
        )

    return PositionsView(
        address=address,
        positions=positions,
        breakdown=tuple(breakdown),
        total_value_usd=total,
        total_margin_usd=sum(s.margin_used_usd for s in ordered),
        funding_pnl_usd=sum(s.funding_pnl_usd for s in ordered),
        largest_exposure=positions[0] if positions else None,
    )


def _first(values: Iterable[object]) -> object:
    return next((v for v in values if v is not None), None)


def merge_token(identifier: str, snapshots: Sequence[TokenSnapshot]) -> TokenView:
    """
    Market facts come from Core, contract facts prefer the EVM snapshot;
    activity counters are summed.
    """
    ordered = _ordered(snapshots)
    by_contract = list(reversed(ordered))

    return TokenView(
        identifier=identifier,
        symbol=_first(s.symbol for s in ordered),
        name=_first(s.name for s in ordered),
        price_usd=_first(s.price_usd for s in ordered),
        volume_24h_usd=sum(s.volume_24h_usd for s in ordered),
        recent_trade_count=sum(s.recent_trade_count for s in ordered),
        funding_rate=_first(s.funding_rate for s in ordered),
        open_interest_usd=_first(s.open_interest_usd for s in ordered),
        contract_address=_first(s.contract_address for s in by_contract),
        decimals=_first(s.decimals for s in by_contract),
        total_supply=_first(s.total_supply for s in by_contract),
        present_on=tuple(
            s.domain
            for s in ordered
            if s.symbol is not None or s.contract_address is not None or s.price_usd is not None
        ),
    )
