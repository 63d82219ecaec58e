from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from loguru import logger

from .outcomes import FailureKind, ResolutionOutcome
from .planner import RecordPlan, ResolutionTask
from .resolver import BlockTimestampResolver


T = TypeVar("T")


def _chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    if size <= 0:
        yield items
        return
    for index in range(0, len(items), size):
        yield items[index : index + size]


@dataclass(slots=True)
class RecordResolution:
    """Fan-in of every marker outcome for one record."""

    plan: RecordPlan
    results: list[tuple[ResolutionTask, ResolutionOutcome]] = field(default_factory=list)


# Called once per record as soon as its markers settle; may be a coroutine function.
RecordCallback = Callable[[RecordResolution], Any]


class BoundedConcurrencyScheduler:
    """Resolve markers chunk by chunk.

    All markers of all records inside a chunk run concurrently; the next
    chunk starts only once every task of the current one has finished, which
    caps in-flight requests at roughly ``chunk_size`` x 6.
    """

    def __init__(self, resolver: BlockTimestampResolver, *, chunk_size: int) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.resolver = resolver
        self.chunk_size = chunk_size

    async def run(
        self,
        plans: Sequence[RecordPlan],
        on_record: RecordCallback | None = None,
    ) -> list[RecordResolution]:
        resolutions: list[RecordResolution] = []
        total_chunks = (len(plans) + self.chunk_size - 1) // self.chunk_size
        for index, chunk in enumerate(_chunked(plans, self.chunk_size), start=1):
            logger.debug(
                "Resolving chunk {}/{} ({} records)", index, total_chunks, len(chunk)
            )
            chunk_results = await asyncio.gather(
                *(self._run_record(plan, on_record) for plan in chunk)
            )
            resolutions.extend(chunk_results)
        return resolutions

    async def _run_record(
        self, plan: RecordPlan, on_record: RecordCallback | None
    ) -> RecordResolution:
        outcomes = await asyncio.gather(*(self._run_task(task) for task in plan.tasks))
        resolution = RecordResolution(plan=plan, results=list(zip(plan.tasks, outcomes)))
        if on_record is not None:
            result = on_record(resolution)
            if inspect.isawaitable(result):
                await result
        return resolution

    async def _run_task(self, task: ResolutionTask) -> ResolutionOutcome:
        try:
            return await task.run(self.resolver)
        except Exception as exc:  # sibling markers still resolve
            logger.exception(
                "Unexpected error resolving {} on {}", task.marker.field_name, task.chain
            )
            return ResolutionOutcome.failed(FailureKind.TRANSPORT_ERROR, repr(exc))


__all__ = ["BoundedConcurrencyScheduler", "RecordResolution"]
