"""Turn pending records into per-marker resolution tasks."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from app.domain import Marker, MarkerRole, PendingRecord

from .adapters import LookupMode
from .outcomes import ResolutionOutcome
from .registry import ChainAdapterRegistry
from .resolver import BlockTimestampResolver


@dataclass(slots=True, frozen=True)
class ResolutionTask:
    """One marker bound to the chain and resolver operation that resolves it."""

    marker: Marker
    chain: str
    mode: LookupMode

    @property
    def uses_transaction(self) -> bool:
        return self.mode is LookupMode.BY_HASH_WITH_BLOCK_FALLBACK and bool(self.marker.tx_hash)

    async def run(self, resolver: BlockTimestampResolver) -> ResolutionOutcome:
        if self.uses_transaction:
            return await resolver.resolve_by_transaction(
                self.chain, self.marker.tx_hash, self.marker.block_number
            )
        return await resolver.resolve_by_block(self.chain, self.marker.block_number)


@dataclass(slots=True)
class RecordPlan:
    record: PendingRecord
    tasks: list[ResolutionTask] = field(default_factory=list)
    skipped: list[Marker] = field(default_factory=list)


class RecordBatchPlanner:
    """Decide, marker by marker, which chain governs it and how to resolve it."""

    def __init__(self, registry: ChainAdapterRegistry, supported_chains: Iterable[str]) -> None:
        self.registry = registry
        self.supported_chains = frozenset(chain.lower() for chain in supported_chains)
        self._unconfigured_warned: set[str] = set()

    def is_supported(self, chain: str) -> bool:
        return (chain or "").lower() in self.supported_chains

    def plan(self, record: PendingRecord) -> RecordPlan:
        plan = RecordPlan(record=record)
        for role in MarkerRole:
            pending = [
                marker for marker in record.pending_markers() if marker.role is role
            ]
            if not pending:
                continue

            chain = record.chain_for(role)
            if not self.is_supported(chain):
                side = "Source" if role is MarkerRole.USER else "Destination"
                logger.warning(
                    "{} chain {} not supported for timestamp fetching for order {}",
                    side,
                    chain,
                    record.order_id,
                )
                plan.skipped.extend(pending)
                continue

            mode = self.registry.resolve_mode(chain)
            if mode is LookupMode.UNSUPPORTED and chain.lower() not in self._unconfigured_warned:
                self._unconfigured_warned.add(chain.lower())
                logger.warning(
                    "Chain {} is supported but has no configured RPC endpoint; its markers cannot be resolved",
                    chain,
                )
            for marker in pending:
                plan.tasks.append(ResolutionTask(marker=marker, chain=chain, mode=mode))
        return plan

    def plan_all(self, records: Iterable[PendingRecord]) -> list[RecordPlan]:
        return [self.plan(record) for record in records]


__all__ = ["RecordBatchPlanner", "RecordPlan", "ResolutionTask"]
