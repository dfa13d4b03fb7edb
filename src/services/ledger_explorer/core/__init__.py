"""
Core explorer logic.

Classification, resolution, aggregation and merging, independent of any
transport or upstream client.
"""

from .aggregator import CrossDomainAggregator
from .classifier import canonicalize, classify, guess_domain
from .models import (
    CandidateEntity,
    ConsistencyLevel,
    Domain,
    EntityKind,
    ResolutionResult,
    SyntacticClass,
    UnifiedView,
    ViewKind,
    ViewMetadata,
)
from .resolver import EntityResolver

__all__ = [
    "CandidateEntity",
    "ConsistencyLevel",
    "CrossDomainAggregator",
    "Domain",
    "EntityKind",
    "EntityResolver",
    "ResolutionResult",
    "SyntacticClass",
    "UnifiedView",
    "ViewKind",
    "ViewMetadata",
    "canonicalize",
    "classify",
    "guess_domain",
]
