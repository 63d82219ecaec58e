"""Standalone job that resolves pending block/transaction markers to timestamps."""

from __future__ import annotations

import argparse
import asyncio
import json
import threading
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import init_db
from app.repositories import SqlOrderStore
from reconciliation.service import TimestampReconciler, session_scope
from reconciliation.writer import ReconciliationSummary


class CycleGuard:
    """Single-slot guard: a cycle requested while another is running is skipped."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()


class TimestampSyncJob:
    """Select orders with pending markers and reconcile them, one cycle at a time."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SqlOrderStore | None = None,
        reconciler: TimestampReconciler | None = None,
        guard: CycleGuard | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or SqlOrderStore(session_scope)
        self.reconciler = reconciler or TimestampReconciler(self.store, settings=self.settings)
        self.guard = guard or CycleGuard()

    async def run_cycle(
        self,
        *,
        order_ids: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> ReconciliationSummary | None:
        if not self.guard.try_acquire():
            logger.info("Previous timestamp cycle still running, skipping this run")
            return None
        try:
            if order_ids:
                target_ids = list(order_ids)
            else:
                target_ids = await asyncio.to_thread(self.store.list_pending_order_ids, limit=limit)
            logger.info("Starting timestamp cycle for {} orders", len(target_ids))
            return await self.reconciler.reconcile(target_ids)
        finally:
            self.guard.release()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resolve block numbers and transaction hashes of swap orders to timestamps",
    )
    parser.add_argument(
        "--order-id",
        dest="order_ids",
        action="append",
        help="Restrict the cycle to specific order IDs (can be provided multiple times)",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of orders to check")
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Override the number of orders resolved concurrently per chunk",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: ReconciliationSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Timestamp summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> ReconciliationSummary | None:
    args = _parse_args(argv)
    settings = get_settings()
    init_db()

    store = SqlOrderStore(session_scope)
    reconciler = TimestampReconciler(store, settings=settings, chunk_size=args.chunk_size)
    job = TimestampSyncJob(settings, store=store, reconciler=reconciler)
    summary = asyncio.run(job.run_cycle(order_ids=args.order_ids, limit=args.limit))

    if summary is not None and args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
