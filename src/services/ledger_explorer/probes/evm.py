"""
EVM domain probe.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..adapters.evm_rpc import hex_to_int
from ..core.classifier import block_height
from ..core.models import (
    BlockMetadata,
    CandidateEntity,
    Domain,
    EntityKind,
    SyntacticClass,
    TxMetadata,
    WalletMetadata,
)
from ..core.protocols import EvmDataProvider
from .core import CORE_MIN_BLOCK_HEIGHT

logger = logging.getLogger(__name__)

WEI_PER_NATIVE = 10**18

_RECEIPT_STATUS = {"0x1": "success", "0x0": "failed"}


class EvmProbe:
    """
    Probe for the EVM chain over JSON-RPC.

    The chain has no symbol index, so non-hex input is always absent.
    """

    domain = Domain.EVM

    def __init__(self, rpc: EvmDataProvider):
        self._rpc = rpc

    async def probe(
        self, canonical_id: str, syntactic_class: SyntacticClass
    ) -> CandidateEntity | None:
        if syntactic_class is SyntacticClass.EVM_ADDRESS:
            return await self._probe_address(canonical_id)
        if syntactic_class is SyntacticClass.TX_HASH:
            return await self._probe_tx(canonical_id)
        if syntactic_class is SyntacticClass.BLOCK_NUMBER:
            height = block_height(canonical_id)
            return await self._probe_block(height) if height is not None else None
        return None

    async def _probe_address(self, address: str) -> CandidateEntity | None:
        code, nonce_hex, balance_hex = await asyncio.gather(
            self._rpc.call("eth_getCode", [address, "latest"]),
            self._rpc.call("eth_getTransactionCount", [address, "latest"]),
            self._rpc.call("eth_getBalance", [address, "latest"]),
        )
        is_contract = bool(code) and code not in ("0x", "0x0")
        nonce = hex_to_int(nonce_hex)
        balance_wei = hex_to_int(balance_hex)

        if not (is_contract or nonce > 0 or balance_wei > 0):
            return None

        return CandidateEntity(
            entity_type=EntityKind.WALLET,
            domain=Domain.EVM,
            canonical_id=address,
            confidence=1.0 if (is_contract or nonce > 0) else 0.8,
            metadata=WalletMetadata(
                tx_count=nonce,
                is_contract=is_contract,
                balance=balance_wei / WEI_PER_NATIVE,
                sources=("rpc",),
            ),
        )

    async def _probe_tx(self, tx_hash: str) -> CandidateEntity | None:
        tx = await self._rpc.call("eth_getTransactionByHash", [tx_hash])
        if not tx:
            return None

        receipt = await self._rpc.call("eth_getTransactionReceipt", [tx_hash])
        if receipt:
            status = _RECEIPT_STATUS.get(receipt.get("status"), "unknown")
        else:
            status = "pending"

        block_hex = tx.get("blockNumber")
        return CandidateEntity(
            entity_type=EntityKind.TX,
            domain=Domain.EVM,
            canonical_id=tx_hash,
            confidence=1.0,
            metadata=TxMetadata(
                block_number=hex_to_int(block_hex) if block_hex else None,
                sender=(tx.get("from") or "").lower() or None,
                recipient=(tx.get("to") or "").lower() or None,
                status=status,
                action_type="contract_call" if tx.get("input", "0x") != "0x" else "transfer",
            ),
        )

    async def _probe_block(self, height: int) -> CandidateEntity | None:
        block = await self._rpc.call("eth_getBlockByNumber", [hex(height), False])
        if not block:
            return None

        timestamp = hex_to_int(block.get("timestamp"))
        return CandidateEntity(
            entity_type=EntityKind.BLOCK,
            domain=Domain.EVM,
            canonical_id=str(height),
            confidence=0.9 if height < CORE_MIN_BLOCK_HEIGHT else 0.7,
            metadata=BlockMetadata(
                height=height,
                block_hash=block.get("hash"),
                tx_count=len(block.get("transactions") or []),
                timestamp=datetime.fromtimestamp(timestamp, tz=timezone.utc) if timestamp else None,
            ),
        )
