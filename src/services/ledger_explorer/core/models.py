"""
Ledger Explorer Models

Pydantic v2 schemas for resolution results, per-domain fetch snapshots
and the merged cross-domain views. All models are frozen; a refresh
always produces a new instance.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import InvalidInputError


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class SyntacticClass(str, Enum):
    """Shape of a raw identifier, decided without any network call."""

    EVM_ADDRESS = "evm_address"
    TX_HASH = "tx_hash"
    BLOCK_NUMBER = "block_number"
    UNKNOWN = "unknown"


class Domain(str, Enum):
    """The two ledgers an identifier can live on."""

    CORE = "core"
    EVM = "evm"


# Tie-break order when two candidates score the same
DOMAIN_PRIORITY: tuple[Domain, ...] = (Domain.CORE, Domain.EVM)


class DomainHint(str, Enum):
    CORE = "core"
    EVM = "evm"
    BOTH = "both"


def parse_domains(values: Iterable[str] | None) -> list[Domain] | None:
    """Map domain names to Domain values; "both" expands to all, None stays None."""
    if values is None:
        return None
    domains: list[Domain] = []
    for value in values:
        name = value.strip().lower()
        if name == DomainHint.BOTH.value:
            domains.extend(Domain)
            continue
        try:
            domains.append(Domain(name))
        except ValueError:
            raise InvalidInputError(f"unknown domain: {value}", value=value) from None
    return domains


class EntityKind(str, Enum):
    WALLET = "wallet"
    TX = "tx"
    BLOCK = "block"
    TOKEN = "token"
    MARKET = "market"


class ConsistencyLevel(str, Enum):
    """How far a merged view can be trusted to reflect both domains at once."""

    EVENTUAL = "eventual"
    SYNCHRONIZED = "synchronized"
    STALE = "stale"


class ViewKind(str, Enum):
    WALLET = "wallet"
    POSITIONS = "positions"
    TOKEN = "token"


class PositionKind(str, Enum):
    PERP = "perp"
    SPOT = "spot"
    LENDING = "lending"
    LP = "lp"


# =============================================================================
# Candidate metadata (tagged by kind)
# =============================================================================


class WalletMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["wallet"] = "wallet"
    tx_count: int | None = None
    is_contract: bool = False
    balance: float | None = None
    first_seen: datetime | None = None
    sources: tuple[str, ...] = ()


class TxMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tx"] = "tx"
    block_number: int | None = None
    sender: str | None = None
    recipient: str | None = None
    status: str | None = None
    action_type: str | None = None
    timestamp: datetime | None = None


class BlockMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["block"] = "block"
    height: int = Field(ge=0)
    block_hash: str | None = None
    tx_count: int | None = None
    timestamp: datetime | None = None


class TokenMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["token"] = "token"
    symbol: str | None = None
    name: str | None = None
    decimals: int | None = None
    contract_address: str | None = None
    token_index: int | None = None


class MarketMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["market"] = "market"
    symbol: str
    max_leverage: int | None = None
    size_decimals: int | None = None


EntityMetadata = Annotated[
    Union[WalletMetadata, TxMetadata, BlockMetadata, TokenMetadata, MarketMetadata],
    Field(discriminator="kind"),
]


# =============================================================================
# Resolution
# =============================================================================


class CandidateEntity(BaseModel):
    """
    One ledger's positive claim about an identifier.

    Only built after a probe confirmed existence, so confidence is
    strictly positive.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: EntityKind
    domain: Domain
    canonical_id: str = Field(..., min_length=1)
    confidence: float = Field(..., gt=0.0, le=1.0)
    metadata: EntityMetadata

    @model_validator(mode="after")
    def _metadata_matches_type(self) -> CandidateEntity:
        if self.metadata.kind != self.entity_type.value:
            raise ValueError(
                f"metadata kind {self.metadata.kind!r} does not match "
                f"entity_type {self.entity_type.value!r}"
            )
        return self


class Alternate(BaseModel):
    """A lower-ranked candidate with a note on where it was found."""

    model_config = ConfigDict(frozen=True)

    candidate: CandidateEntity
    context: str


class ResolutionResult(BaseModel):
    """
    Resolver output for one query.

    A null primary means both domains confirmed absence (or one did and
    the other was unavailable, see unavailable_domains).
    """

    model_config = ConfigDict(frozen=True)

    query: str
    syntactic_class: SyntacticClass
    primary: CandidateEntity | None = None
    alternates: tuple[Alternate, ...] = ()
    resolved_at: datetime = Field(default_factory=_now_utc)
    unavailable_domains: tuple[Domain, ...] = Field(
        default=(),
        description="Domains whose probe failed; the result may be incomplete",
    )

    @model_validator(mode="after")
    def _check_invariants(self) -> ResolutionResult:
        if self.primary is None and self.alternates:
            raise ValueError("alternates require a primary")
        seen: set[tuple[Domain, EntityKind]] = set()
        for candidate in self.candidates:
            key = (candidate.domain, candidate.entity_type)
            if key in seen:
                raise ValueError(
                    f"duplicate candidate for {key[0].value}/{key[1].value}"
                )
            seen.add(key)
        return self

    @property
    def found(self) -> bool:
        return self.primary is not None

    @property
    def incomplete(self) -> bool:
        return bool(self.unavailable_domains)

    @property
    def candidates(self) -> list[CandidateEntity]:
        """Primary followed by alternates, relevance-descending."""
        if self.primary is None:
            return []
        return [self.primary] + [alt.candidate for alt in self.alternates]


# =============================================================================
# Per-domain fetch snapshots
# =============================================================================


class Position(BaseModel):
    """An open position or balance held on one domain."""

    model_config = ConfigDict(frozen=True)

    domain: Domain
    kind: PositionKind
    market: str
    side: str = Field(..., description="long, short, supply, borrow or hold")
    size: float
    value_usd: float = 0.0
    entry_price: float | None = None
    mark_price: float | None = None
    unrealized_pnl_usd: float = 0.0
    margin_usd: float = 0.0
    leverage: float | None = None
    protocol: str | None = None

    @property
    def dedupe_key(self) -> str:
        protocol = self.protocol or ""
        return f"{self.domain.value}:{self.kind.value}:{protocol}:{self.market}:{self.side}"


class WalletSnapshot(BaseModel):
    """What one domain knows about a wallet."""

    model_config = ConfigDict(frozen=True)

    domain: Domain
    watermark: int | None = None
    account_value_usd: float = 0.0
    volume_usd: float = 0.0
    realized_pnl_usd: float = 0.0
    unrealized_pnl_usd: float = 0.0
    funding_pnl_usd: float = 0.0
    trade_count: int = 0
    positions: tuple[Position, ...] = ()


class PositionsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: Domain
    watermark: int | None = None
    positions: tuple[Position, ...] = ()
    margin_used_usd: float = 0.0
    funding_pnl_usd: float = 0.0


class TokenSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: Domain
    watermark: int | None = None
    symbol: str | None = None
    name: str | None = None
    price_usd: float | None = None
    volume_24h_usd: float = 0.0
    recent_trade_count: int = 0
    funding_rate: float | None = None
    open_interest_usd: float | None = None
    contract_address: str | None = None
    decimals: int | None = None
    total_supply: float | None = None


SNAPSHOT_TYPES: dict[ViewKind, type[BaseModel]] = {
    ViewKind.WALLET: WalletSnapshot,
    ViewKind.POSITIONS: PositionsSnapshot,
    ViewKind.TOKEN: TokenSnapshot,
}


# =============================================================================
# Merged views
# =============================================================================


class WalletView(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    total_value_usd: float = 0.0
    total_volume_usd: float = 0.0
    realized_pnl_usd: float = 0.0
    unrealized_pnl_usd: float = 0.0
    funding_pnl_usd: float = 0.0
    total_pnl_usd: float = 0.0
    trade_count: int = 0
    positions: tuple[Position, ...] = ()
    value_by_domain: dict[Domain, float] = Field(default_factory=dict)
    active_domains: tuple[Domain, ...] = ()


class PositionBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: PositionKind
    count: int = 0
    value_usd: float = 0.0
    percentage: float = 0.0


class PositionsView(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    positions: tuple[Position, ...] = ()
    breakdown: tuple[PositionBreakdown, ...] = ()
    total_value_usd: float = 0.0
    total_margin_usd: float = 0.0
    funding_pnl_usd: float = 0.0
    largest_exposure: Position | None = None


class TokenView(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    symbol: str | None = None
    name: str | None = None
    price_usd: float | None = None
    volume_24h_usd: float = 0.0
    recent_trade_count: int = 0
    funding_rate: float | None = None
    open_interest_usd: float | None = None
    contract_address: str | None = None
    decimals: int | None = None
    total_supply: float | None = None
    present_on: tuple[Domain, ...] = ()


class SourceWatermark(BaseModel):
    """Highest sequence/block actually observed from each fresh domain."""

    model_config = ConfigDict(frozen=True)

    core_seq: int | None = None
    evm_block: int | None = None

    def for_domain(self, domain: Domain) -> int | None:
        return self.core_seq if domain is Domain.CORE else self.evm_block


class DataCompleteness(BaseModel):
    model_config = ConfigDict(frozen=True)

    trades: bool = False
    funding: bool = False
    positions: bool = False

    @property
    def complete(self) -> bool:
        return self.trades and self.funding and self.positions


class ViewMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    computed_at: datetime = Field(default_factory=_now_utc)
    source_watermark: SourceWatermark = Field(default_factory=SourceWatermark)
    consistency_level: ConsistencyLevel
    confidence_score: int = Field(..., ge=0, le=100)
    data_completeness: DataCompleteness = Field(default_factory=DataCompleteness)
    domains_requested: tuple[Domain, ...] = ()
    domains_failed: tuple[Domain, ...] = ()
    domains_stale: tuple[Domain, ...] = ()

    @model_validator(mode="after")
    def _check_consistency(self) -> ViewMetadata:
        if self.consistency_level is ConsistencyLevel.SYNCHRONIZED:
            wm = self.source_watermark
            if wm.core_seq is None or wm.evm_block is None:
                raise ValueError("synchronized views need both watermarks")
            if self.domains_failed or self.domains_stale:
                raise ValueError("synchronized views cannot include failed or stale domains")
        if self.domains_stale and self.consistency_level is not ConsistencyLevel.STALE:
            raise ValueError("views with substituted cached data must be stale")
        return self


ViewT = TypeVar("ViewT", WalletView, PositionsView, TokenView)


class UnifiedView(BaseModel, Generic[ViewT]):
    """Merged payload plus its consistency annotation."""

    model_config = ConfigDict(frozen=True)

    data: ViewT
    metadata: ViewMetadata
