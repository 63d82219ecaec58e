"""Swap-order data access used by the timestamp reconciler."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from app.domain import (
    MARKER_FIELDS,
    EventKind,
    Marker,
    MarkerRole,
    PendingRecord,
    ResolvedFields,
)
from app.models import SwapOrder


def _pending_clause(field_name: str):
    timestamp = getattr(SwapOrder, field_name)
    block_number = getattr(SwapOrder, f"{field_name}_block_number")
    tx_hash = getattr(SwapOrder, f"{field_name}_tx_hash")
    return and_(
        timestamp.is_(None),
        or_(block_number.is_not(None), and_(tx_hash.is_not(None), tx_hash != "")),
    )


def _any_marker_pending():
    return or_(*(_pending_clause(name) for name in MARKER_FIELDS))


def _to_pending_record(order: SwapOrder) -> PendingRecord:
    markers: list[Marker] = []
    for role in MarkerRole:
        for event in EventKind:
            name = f"{role.value}_{event.value}"
            markers.append(
                Marker(
                    role=role,
                    event=event,
                    timestamp=getattr(order, name),
                    block_number=getattr(order, f"{name}_block_number"),
                    tx_hash=getattr(order, f"{name}_tx_hash") or None,
                )
            )
    return PendingRecord(
        record_id=order.id,
        order_id=order.create_order_id,
        source_chain=order.source_chain,
        destination_chain=order.destination_chain,
        markers=markers,
    )


class OrderRepository:
    """Encapsulate reads and timestamp writes against the analysis table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Queries

    def list_pending_order_ids(self, *, limit: int | None = None) -> list[str]:
        query = (
            select(SwapOrder.create_order_id)
            .where(_any_marker_pending())
            .order_by(SwapOrder.id)
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())

    def fetch_pending_records(self, order_ids: Sequence[str]) -> list[PendingRecord]:
        if not order_ids:
            return []
        query = (
            select(SwapOrder)
            .where(SwapOrder.create_order_id.in_(list(order_ids)))
            .where(_any_marker_pending())
            .order_by(SwapOrder.id)
        )
        orders = self._session.execute(query).scalars().all()
        return [_to_pending_record(order) for order in orders]

    # ------------------------------------------------------------------
    # Mutations

    def update_timestamps(self, record_id: int, fields: ResolvedFields) -> None:
        unknown = set(fields) - set(MARKER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown timestamp fields: {', '.join(sorted(unknown))}")
        values = {name: fields.get(name) for name in MARKER_FIELDS}
        self._session.execute(
            update(SwapOrder).where(SwapOrder.id == record_id).values(**values)
        )


class SqlOrderStore:
    """Pending-record source and sink backed by short-lived sessions.

    Every call opens its own session so a failed write never rolls back
    another record's update.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]],
        *,
        repository_factory: Callable[[Session], Any] = OrderRepository,
    ) -> None:
        self._session_factory = session_factory
        self._repository_factory = repository_factory

    def list_pending_order_ids(self, *, limit: int | None = None) -> list[str]:
        with self._session_factory() as session:
            return self._repository_factory(session).list_pending_order_ids(limit=limit)

    def fetch_pending_records(self, order_ids: Sequence[str]) -> list[PendingRecord]:
        with self._session_factory() as session:
            return self._repository_factory(session).fetch_pending_records(order_ids)

    def persist_resolved_fields(
        self, record_id: int, fields: ResolvedFields
    ) -> None:
        with self._session_factory() as session:
            self._repository_factory(session).update_timestamps(record_id, fields)
