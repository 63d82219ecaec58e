from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from contextlib import contextmanager
from typing import Iterator, Protocol

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db import SessionLocal
from app.domain import PendingRecord, ResolvedFields
from app.repositories import SqlOrderStore

from .client import RateLimitedFetchClient
from .planner import RecordBatchPlanner
from .registry import ChainAdapterRegistry, build_registry
from .resolver import BlockTimestampResolver
from .scheduler import BoundedConcurrencyScheduler
from .writer import ReconciliationSummary, ReconciliationWriter


class PendingRecordStore(Protocol):
    def fetch_pending_records(self, order_ids: Sequence[str]) -> list[PendingRecord]:
        """Return records among ``order_ids`` with at least one pending marker."""

    def persist_resolved_fields(
        self, record_id: int, fields: ResolvedFields
    ) -> None:
        """Upsert the six timestamp fields of one record."""


@contextmanager
def session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class TimestampReconciler:
    """Resolve pending event markers to timestamps for a set of orders.

    Stateless across invocations: every call builds its own HTTP client and
    summary, so disjoint id sets may be reconciled concurrently. Keeping
    invocations over the same ids from overlapping is the caller's job.
    """

    def __init__(
        self,
        store: PendingRecordStore,
        *,
        settings: Settings | None = None,
        registry: ChainAdapterRegistry | None = None,
        client_factory: Callable[[], RateLimitedFetchClient] | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.registry = registry or build_registry(self.settings)
        self.client_factory = client_factory or (
            lambda: RateLimitedFetchClient(
                max_attempts=self.settings.rpc_max_attempts,
                backoff_base_seconds=self.settings.rpc_backoff_base_seconds,
                timeout=self.settings.rpc_timeout_seconds,
            )
        )
        self.chunk_size = chunk_size or self.settings.reconcile_chunk_size

    async def reconcile(self, order_ids: Sequence[str]) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        if not order_ids:
            logger.info("No order IDs provided for timestamp update")
            return summary

        records = await asyncio.to_thread(self.store.fetch_pending_records, list(order_ids))
        logger.info("Found {} orders with pending timestamps", len(records))
        if not records:
            return summary

        planner = RecordBatchPlanner(self.registry, self.settings.supported_chains)
        plans = planner.plan_all(records)
        writer = ReconciliationWriter(self.store.persist_resolved_fields, summary)

        async with self.client_factory() as client:
            scheduler = BoundedConcurrencyScheduler(
                BlockTimestampResolver(self.registry, client), chunk_size=self.chunk_size
            )
            await scheduler.run(plans, on_record=writer.apply)

        logger.info(
            "Timestamp update completed: {} orders updated, {} orders failed, {} skipped",
            summary.updated_count,
            len(summary.failed_order_ids),
            len(summary.skipped_order_ids),
        )
        if summary.failed_order_ids:
            logger.info("Failed orders: {}", ", ".join(summary.failed_order_ids))
        return summary


def reconcile_timestamps(
    order_ids: Sequence[str], *, settings: Settings | None = None
) -> ReconciliationSummary:
    """Blocking entry point backed by the analysis database."""

    reconciler = TimestampReconciler(SqlOrderStore(session_scope), settings=settings)
    return asyncio.run(reconciler.reconcile(order_ids))


__all__ = [
    "PendingRecordStore",
    "TimestampReconciler",
    "reconcile_timestamps",
    "session_scope",
]
