from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Sequence

from app.domain import PendingRecord
from reconciliation.adapters import LookupMode
from reconciliation.outcomes import FailureKind, ResolutionOutcome
from reconciliation.registry import ChainAdapterRegistry
from reconciliation.service import TimestampReconciler


class FakeStore:
    def __init__(self, records: Sequence[PendingRecord], *, fail_on: set[int] | None = None) -> None:
        self.records = list(records)
        self.fetch_calls: list[list[str]] = []
        self.persisted: list[tuple[int, dict[str, datetime | None]]] = []
        self.fail_on = fail_on or set()
        self.events: list[tuple[str, object]] | None = None

    def fetch_pending_records(self, order_ids: Sequence[str]) -> list[PendingRecord]:
        self.fetch_calls.append(list(order_ids))
        wanted = set(order_ids)
        return [r for r in self.records if r.order_id in wanted and r.pending_markers()]

    def persist_resolved_fields(self, record_id: int, fields: dict[str, datetime | None]) -> None:
        if record_id in self.fail_on:
            raise RuntimeError("database is locked")
        if self.events is not None:
            self.events.append(("persist", record_id))
        self.persisted.append((record_id, dict(fields)))


class ScriptedAdapter:
    """Resolve block numbers from a table; unknown blocks are NOT_FOUND."""

    def __init__(
        self,
        timestamps: dict[int, int],
        *,
        lookup_mode: LookupMode = LookupMode.BY_BLOCK_ONLY,
        events: list[tuple[str, object]] | None = None,
    ) -> None:
        self.timestamps = timestamps
        self.lookup_mode = lookup_mode
        self.calls: list[int] = []
        self.events = events
        self.in_flight = 0
        self.peak_in_flight = 0

    async def block_timestamp(self, client, block_number):
        self.calls.append(block_number)
        if self.events is not None:
            self.events.append(("call", block_number))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if block_number in self.timestamps:
            return ResolutionOutcome.resolved(self.timestamps[block_number])
        return ResolutionOutcome.failed(FailureKind.NOT_FOUND, f"block {block_number}")

    async def transaction_timestamp(self, client, tx_hash):
        return ResolutionOutcome.failed(FailureKind.NOT_FOUND, tx_hash)


class NullClient:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


def _reconciler(store, adapters, settings, *, chunk_size=5) -> TimestampReconciler:
    return TimestampReconciler(
        store,
        settings=settings,
        registry=ChainAdapterRegistry(adapters),
        client_factory=NullClient,
        chunk_size=chunk_size,
    )


def test_records_without_markers_are_neither_updated_nor_failed(make_record, test_settings):
    store = FakeStore([make_record(1), make_record(2)])
    adapter = ScriptedAdapter({})

    summary = asyncio.run(
        _reconciler(store, {"ethereum": adapter}, test_settings).reconcile(["order-1", "order-2"])
    )

    assert store.persisted == []
    assert adapter.calls == []
    assert summary.updated_count == 0
    assert summary.failed_order_ids == []


def test_empty_order_ids_do_not_touch_the_store(test_settings):
    store = FakeStore([])

    summary = asyncio.run(_reconciler(store, {}, test_settings).reconcile([]))

    assert store.fetch_calls == []
    assert summary.updated_count == 0


def test_partial_success_persists_once_with_only_resolved_field(make_record, test_settings):
    record = make_record(
        7,
        source_chain="ethereum",
        user_init={"block_number": 100},
        user_redeem={"block_number": 200},
        user_refund={"block_number": 300},
    )
    store = FakeStore([record])
    adapter = ScriptedAdapter({200: 1_700_000_000})

    summary = asyncio.run(
        _reconciler(store, {"ethereum": adapter}, test_settings).reconcile(["order-7"])
    )

    assert len(store.persisted) == 1
    record_id, fields = store.persisted[0]
    assert record_id == 7
    assert fields["user_redeem"] == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert fields["user_init"] is None
    assert fields["user_refund"] is None
    assert set(fields) == {
        "user_init", "user_redeem", "user_refund", "cobi_init", "cobi_redeem", "cobi_refund",
    }
    assert summary.updated_count == 1
    assert summary.resolved_markers == 1
    assert summary.failures_by_kind == {"not_found": 2}


def test_previously_resolved_fields_are_carried_into_update(make_record, test_settings):
    existing = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = make_record(
        3,
        destination_chain="ethereum",
        cobi_init={"block_number": 50, "timestamp": existing},
        cobi_redeem={"block_number": 60},
    )
    store = FakeStore([record])
    adapter = ScriptedAdapter({50: 1, 60: 1_714_567_890})

    asyncio.run(_reconciler(store, {"ethereum": adapter}, test_settings).reconcile(["order-3"]))

    (_, fields), = store.persisted
    assert fields["cobi_init"] == existing
    assert fields["cobi_redeem"] == datetime.fromtimestamp(1_714_567_890, tz=timezone.utc)
    assert adapter.calls == [60]


def test_unsupported_source_chain_still_processes_destination(make_record, test_settings):
    record = make_record(
        4,
        source_chain="solana",
        destination_chain="ethereum",
        user_init={"block_number": 1},
        user_redeem={"block_number": 2},
        cobi_init={"block_number": 3},
    )
    store = FakeStore([record])
    ethereum = ScriptedAdapter({3: 1_700_000_003})
    solana = ScriptedAdapter({1: 1, 2: 2})

    summary = asyncio.run(
        _reconciler(store, {"ethereum": ethereum, "solana": solana}, test_settings).reconcile(["order-4"])
    )

    assert solana.calls == []
    assert ethereum.calls == [3]
    assert summary.updated_count == 1
    assert store.persisted[0][1]["cobi_init"] is not None


def test_all_markers_failing_reports_order_without_write(make_record, test_settings):
    record = make_record(5, user_init={"block_number": 1}, user_redeem={"block_number": 2})
    store = FakeStore([record])

    summary = asyncio.run(
        _reconciler(store, {"ethereum": ScriptedAdapter({})}, test_settings).reconcile(["order-5"])
    )

    assert store.persisted == []
    assert summary.updated_count == 0
    assert summary.failed_order_ids == ["order-5"]


def test_markers_only_on_unsupported_chain_are_skipped_not_failed(make_record, test_settings):
    record = make_record(6, source_chain="solana", user_init={"block_number": 1})
    store = FakeStore([record])

    summary = asyncio.run(_reconciler(store, {}, test_settings).reconcile(["order-6"]))

    assert summary.failed_order_ids == []
    assert summary.skipped_order_ids == ["order-6"]


def test_epoch_timestamp_is_persisted(make_record, test_settings):
    record = make_record(8, user_init={"block_number": 1})
    store = FakeStore([record])

    summary = asyncio.run(
        _reconciler(store, {"ethereum": ScriptedAdapter({1: 0})}, test_settings).reconcile(["order-8"])
    )

    assert summary.updated_count == 1
    assert store.persisted[0][1]["user_init"] == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_persistence_error_marks_order_failed_and_continues(make_record, test_settings):
    records = [
        make_record(1, user_init={"block_number": 1}),
        make_record(2, user_init={"block_number": 2}),
    ]
    store = FakeStore(records, fail_on={1})

    summary = asyncio.run(
        _reconciler(store, {"ethereum": ScriptedAdapter({1: 10, 2: 20})}, test_settings).reconcile(
            ["order-1", "order-2"]
        )
    )

    assert summary.updated_count == 1
    assert summary.failed_order_ids == ["order-1"]
    assert [record_id for record_id, _ in store.persisted] == [2]


def test_twelve_records_are_processed_in_three_sequential_chunks(make_record, test_settings):
    events: list[tuple[str, object]] = []
    records = [make_record(i, user_init={"block_number": i}) for i in range(1, 13)]
    store = FakeStore(records)
    store.events = events
    adapter = ScriptedAdapter({i: 1_700_000_000 + i for i in range(1, 13)}, events=events)

    summary = asyncio.run(
        _reconciler(store, {"ethereum": adapter}, test_settings, chunk_size=5).reconcile(
            [record.order_id for record in records]
        )
    )

    assert summary.updated_count == 12
    assert summary.failed_order_ids == []
    assert len(store.persisted) == 12
    assert adapter.peak_in_flight == 5

    chunks = [set(range(1, 6)), set(range(6, 11)), {11, 12}]
    for earlier, later in zip(chunks, chunks[1:]):
        last_persist = max(
            i for i, (kind, value) in enumerate(events) if kind == "persist" and value in earlier
        )
        first_call = min(
            i for i, (kind, value) in enumerate(events) if kind == "call" and value in later
        )
        assert last_persist < first_call


def test_adapter_exception_does_not_sink_sibling_markers(make_record, test_settings):
    class ExplodingAdapter(ScriptedAdapter):
        async def block_timestamp(self, client, block_number):
            if block_number == 1:
                raise KeyError("boom")
            return await super().block_timestamp(client, block_number)

    record = make_record(9, user_init={"block_number": 1}, user_redeem={"block_number": 2})
    store = FakeStore([record])

    summary = asyncio.run(
        _reconciler(store, {"ethereum": ExplodingAdapter({2: 99})}, test_settings).reconcile(["order-9"])
    )

    assert summary.updated_count == 1
    assert summary.failures_by_kind == {"transport_error": 1}
    assert store.persisted[0][1]["user_redeem"] is not None


def test_slow_persist_does_not_stall_sibling_lookups(make_record, test_settings):
    class SlowStore(FakeStore):
        def persist_resolved_fields(self, record_id, fields):
            if record_id == 1:
                time.sleep(0.5)
            super().persist_resolved_fields(record_id, fields)

    class TimedAdapter(ScriptedAdapter):
        def __init__(self, timestamps):
            super().__init__(timestamps)
            self.durations: dict[int, float] = {}

        async def block_timestamp(self, client, block_number):
            started = time.perf_counter()
            if block_number == 2:
                await asyncio.sleep(0.05)
            outcome = await super().block_timestamp(client, block_number)
            self.durations[block_number] = time.perf_counter() - started
            return outcome

    store = SlowStore(
        [make_record(1, user_init={"block_number": 1}), make_record(2, user_init={"block_number": 2})]
    )
    adapter = TimedAdapter({1: 10, 2: 20})

    summary = asyncio.run(
        _reconciler(store, {"ethereum": adapter}, test_settings).reconcile(["order-1", "order-2"])
    )

    assert summary.updated_count == 2
    assert adapter.durations[2] < 0.3
