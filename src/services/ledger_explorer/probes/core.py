"""
Core domain probe.

Answers "does this identifier exist on the Core ledger" from the indexed
event store and the Core explorer/info APIs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.common.cache import TieredCache, VolatilityTier

from ..adapters.core_api import cached_info
from ..core.classifier import block_height, is_symbol
from ..core.models import (
    BlockMetadata,
    CandidateEntity,
    Domain,
    EntityKind,
    MarketMetadata,
    SyntacticClass,
    TokenMetadata,
    TxMetadata,
    WalletMetadata,
)
from ..core.parsing import ms_to_datetime
from ..core.protocols import CoreDataProvider, EventStore
from ..errors import ProviderError

logger = logging.getLogger(__name__)

# Core block heights start here; smaller heights are far more likely EVM blocks
CORE_MIN_BLOCK_HEIGHT = 100_000_000


class CoreProbe:
    """
    Probe for the Core ledger.

    Sub-lookups per syntactic class:
    - address: event store wallet row and explorer userDetails
    - tx hash: store by id, store by dedupe key, explorer txDetails
    - block height: explorer blockDetails
    - symbol: perp universe (meta), then spot tokens (spotMeta)
    """

    domain = Domain.CORE

    def __init__(
        self,
        core_api: CoreDataProvider,
        store: EventStore | None = None,
        cache: TieredCache | None = None,
    ):
        self._core_api = core_api
        self._store = store
        self._cache = cache

    async def probe(
        self, canonical_id: str, syntactic_class: SyntacticClass
    ) -> CandidateEntity | None:
        if syntactic_class is SyntacticClass.EVM_ADDRESS:
            return await self._probe_wallet(canonical_id)
        if syntactic_class is SyntacticClass.TX_HASH:
            return await self._probe_tx(canonical_id)
        if syntactic_class is SyntacticClass.BLOCK_NUMBER:
            height = block_height(canonical_id)
            return await self._probe_block(height) if height is not None else None
        if is_symbol(canonical_id):
            return await self._probe_symbol(canonical_id)
        return None

    async def _probe_wallet(self, address: str) -> CandidateEntity | None:
        lookups: list[Any] = [self._core_api.explorer("userDetails", user=address)]
        if self._store is not None:
            lookups.append(self._store.wallet_exists(address))
        results = await asyncio.gather(*lookups, return_exceptions=True)

        details = results[0]
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, ProviderError):
                raise error

        sources: list[str] = []
        tx_count = None
        if not isinstance(details, BaseException) and details:
            txs = details.get("txs") if isinstance(details, dict) else details
            if isinstance(txs, list):
                tx_count = len(txs)
            if tx_count is None or tx_count > 0:
                sources.append("explorer")
        if len(results) > 1 and results[1] is True:
            sources.append("event_store")

        if not sources:
            if errors:
                # Absence is unconfirmed while a lookup is down
                raise errors[0]
            return None

        if errors:
            logger.info(f"Core wallet {address} confirmed despite failed lookup: {errors[0]}")
        return CandidateEntity(
            entity_type=EntityKind.WALLET,
            domain=Domain.CORE,
            canonical_id=address,
            confidence=0.95 if len(sources) == 2 else 0.8,
            metadata=WalletMetadata(tx_count=tx_count, sources=tuple(sources)),
        )

    async def _probe_tx(self, tx_hash: str) -> CandidateEntity | None:
        store_error: ProviderError | None = None
        if self._store is not None:
            try:
                row = await self._store.find_event_by_id(tx_hash)
                if row is None:
                    row = await self._store.find_event_by_dedupe_key(tx_hash)
            except ProviderError as e:
                logger.info(f"Event store lookup failed for {tx_hash}: {e}")
                store_error = e
                row = None
            if row is not None:
                return CandidateEntity(
                    entity_type=EntityKind.TX,
                    domain=Domain.CORE,
                    canonical_id=tx_hash,
                    confidence=0.9,
                    metadata=TxMetadata(
                        sender=row.get("address"),
                        action_type=row.get("event_type"),
                        timestamp=row.get("ts"),
                    ),
                )

        details = await self._core_api.explorer("txDetails", hash=tx_hash)
        if not details:
            if store_error is not None:
                raise store_error
            return None

        tx = details.get("tx", details)
        action = tx.get("action") or {}
        return CandidateEntity(
            entity_type=EntityKind.TX,
            domain=Domain.CORE,
            canonical_id=tx_hash,
            confidence=1.0,
            metadata=TxMetadata(
                block_number=tx.get("block"),
                sender=tx.get("user"),
                status="failed" if tx.get("error") else "success",
                action_type=action.get("type") if isinstance(action, dict) else None,
                timestamp=ms_to_datetime(tx.get("time")),
            ),
        )

    async def _probe_block(self, height: int) -> CandidateEntity | None:
        details = await self._core_api.explorer("blockDetails", height=height)
        if not details:
            return None

        return CandidateEntity(
            entity_type=EntityKind.BLOCK,
            domain=Domain.CORE,
            canonical_id=str(height),
            confidence=0.9 if height >= CORE_MIN_BLOCK_HEIGHT else 0.7,
            metadata=BlockMetadata(
                height=height,
                block_hash=details.get("hash"),
                tx_count=details.get("numTxs", len(details.get("txs") or [])),
                timestamp=ms_to_datetime(details.get("blockTime")),
            ),
        )

    async def _probe_symbol(self, symbol: str) -> CandidateEntity | None:
        meta = await cached_info(self._core_api, "meta", self._cache, VolatilityTier.LONG)
        for asset in (meta or {}).get("universe", []):
            if str(asset.get("name", "")).upper() == symbol:
                return CandidateEntity(
                    entity_type=EntityKind.MARKET,
                    domain=Domain.CORE,
                    canonical_id=symbol,
                    confidence=1.0,
                    metadata=MarketMetadata(
                        symbol=symbol,
                        max_leverage=asset.get("maxLeverage"),
                        size_decimals=asset.get("szDecimals"),
                    ),
                )

        spot_meta = await cached_info(self._core_api, "spotMeta", self._cache, VolatilityTier.LONG)
        for token in (spot_meta or {}).get("tokens", []):
            if str(token.get("name", "")).upper() == symbol:
                contract = token.get("evmContract") or {}
                return CandidateEntity(
                    entity_type=EntityKind.TOKEN,
                    domain=Domain.CORE,
                    canonical_id=symbol,
                    confidence=1.0,
                    metadata=TokenMetadata(
                        symbol=symbol,
                        name=token.get("fullName"),
                        decimals=token.get("weiDecimals"),
                        contract_address=(contract.get("address") or "").lower() or None,
                        token_index=token.get("index"),
                    ),
                )
        return None
