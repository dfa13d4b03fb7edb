"""
Collaborator Protocol Definitions

Uses typing.Protocol for duck-typed interface definitions.
The resolver and aggregator only depend on these; concrete adapters and
test fakes both qualify without inheritance.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from .models import (
    CandidateEntity,
    Domain,
    PositionsSnapshot,
    SyntacticClass,
    TokenSnapshot,
    WalletSnapshot,
)


@runtime_checkable
class DomainProbe(Protocol):
    """
    Asks one ledger whether an identifier exists there.

    Returns None for a confirmed absence. Raises only for infrastructure
    failure, which the resolver reports as unknown rather than absent.
    """

    domain: Domain

    async def probe(
        self, canonical_id: str, syntactic_class: SyntacticClass
    ) -> CandidateEntity | None:
        ...


@runtime_checkable
class DomainFetcher(Protocol):
    """Retrieves one ledger's economic data for an already-resolved identifier."""

    domain: Domain

    async def fetch_wallet(self, address: str) -> WalletSnapshot:
        ...

    async def fetch_positions(self, address: str) -> PositionsSnapshot:
        ...

    async def fetch_token(self, identifier: str) -> TokenSnapshot:
        ...


@runtime_checkable
class CoreDataProvider(Protocol):
    """Core ledger info and explorer endpoints."""

    async def info(self, request_type: str, **params: Any) -> Any:
        """POST an info request; returns the decoded JSON body."""
        ...

    async def explorer(self, request_type: str, **params: Any) -> Any | None:
        """POST an explorer request; returns None when the entity is unknown."""
        ...


@runtime_checkable
class EvmDataProvider(Protocol):
    """JSON-RPC access to the EVM chain."""

    async def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Invoke a JSON-RPC method; returns the result field (None if not found)."""
        ...

    async def block_number(self) -> int:
        ...

    async def erc20_call(self, contract: str, selector: str, argument: str | None = None) -> int:
        """eth_call a uint256 ERC-20 view and decode the result."""
        ...


@runtime_checkable
class EventStore(Protocol):
    """Relational store of off-chain-indexed economic events."""

    async def wallet_exists(self, address: str) -> bool:
        ...

    async def find_event_by_id(self, event_id: str) -> dict[str, Any] | None:
        ...

    async def find_event_by_dedupe_key(self, key: str) -> dict[str, Any] | None:
        ...

    async def lending_positions(self, address: str) -> list[dict[str, Any]]:
        ...
