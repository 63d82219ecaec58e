from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.domain import ResolvedFields

from .scheduler import RecordResolution


PersistFn = Callable[[int, ResolvedFields], None]


@dataclass(slots=True)
class ReconciliationSummary:
    checked_records: int = 0
    updated_count: int = 0
    resolved_markers: int = 0
    failed_order_ids: list[str] = field(default_factory=list)
    skipped_order_ids: list[str] = field(default_factory=list)
    failures_by_kind: Counter[str] = field(default_factory=Counter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_records": self.checked_records,
            "updated_count": self.updated_count,
            "resolved_markers": self.resolved_markers,
            "failed_order_ids": list(self.failed_order_ids),
            "skipped_order_ids": list(self.skipped_order_ids),
            "failures_by_kind": dict(self.failures_by_kind),
        }


class ReconciliationWriter:
    """Fold marker outcomes into one all-fields update per changed record."""

    def __init__(self, persist: PersistFn, summary: ReconciliationSummary | None = None) -> None:
        self._persist = persist
        self.summary = summary or ReconciliationSummary()

    async def apply(self, resolution: RecordResolution) -> bool:
        record = resolution.plan.record
        self.summary.checked_records += 1

        if not resolution.plan.tasks:
            self.summary.skipped_order_ids.append(record.order_id)
            return False

        fields = record.timestamp_fields()
        has_changes = False
        for task, outcome in resolution.results:
            if outcome.ok:
                if task.marker.timestamp is None:
                    fields[task.marker.field_name] = outcome.as_datetime()
                    has_changes = True
                    self.summary.resolved_markers += 1
                continue
            failure = outcome.failure.value if outcome.failure else "unknown"
            self.summary.failures_by_kind[failure] += 1
            logger.debug(
                "Could not resolve {} for order {} on {}: {}",
                task.marker.field_name,
                record.order_id,
                task.chain,
                outcome.detail or failure,
            )

        if not has_changes:
            logger.warning(
                "No timestamps updated for order {} (id={}): none of its pending markers could be resolved",
                record.order_id,
                record.record_id,
            )
            self.summary.failed_order_ids.append(record.order_id)
            return False

        try:
            # store is synchronous; run it off the event loop
            await asyncio.to_thread(self._persist, record.record_id, fields)
        except Exception:
            logger.exception(
                "Failed to persist timestamps for order {} (id={})",
                record.order_id,
                record.record_id,
            )
            self.summary.failed_order_ids.append(record.order_id)
            return False

        self.summary.updated_count += 1
        logger.info(
            "Updated timestamps for order {} (id={}): {}",
            record.order_id,
            record.record_id,
            ", ".join(
                f"{name}={value.isoformat() if value is not None else None}"
                for name, value in fields.items()
            ),
        )
        return True


__all__ = ["PersistFn", "ReconciliationSummary", "ReconciliationWriter"]
