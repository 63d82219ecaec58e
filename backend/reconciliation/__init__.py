"""Resolve on-chain event markers of swap orders to wall-clock timestamps."""

from .adapters import ChainAdapter, LookupMode, RpcDialect
from .client import RateLimitedFetchClient
from .outcomes import FailureKind, ResolutionOutcome
from .registry import ChainAdapterRegistry, build_registry
from .resolver import BlockTimestampResolver
from .service import TimestampReconciler, reconcile_timestamps
from .writer import ReconciliationSummary

__all__ = [
    "BlockTimestampResolver",
    "ChainAdapter",
    "ChainAdapterRegistry",
    "FailureKind",
    "LookupMode",
    "RateLimitedFetchClient",
    "ReconciliationSummary",
    "ResolutionOutcome",
    "RpcDialect",
    "TimestampReconciler",
    "build_registry",
    "reconcile_timestamps",
]
