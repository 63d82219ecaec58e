"""Typed domain representations shared by the repository and the reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MarkerRole(str, Enum):
    """Which party's swap an event marker belongs to."""

    USER = "user"
    COUNTERPARTY = "cobi"


class EventKind(str, Enum):
    INIT = "init"
    REDEEM = "redeem"
    REFUND = "refund"


def marker_field(role: MarkerRole, event: EventKind) -> str:
    """Return the column name holding the resolved timestamp for a marker slot."""

    return f"{role.value}_{event.value}"


MARKER_FIELDS: tuple[str, ...] = tuple(
    marker_field(role, event) for role in MarkerRole for event in EventKind
)

# Column name -> timestamp for all six marker slots of one record.
ResolvedFields = dict[str, datetime | None]


@dataclass(slots=True)
class Marker:
    """One lifecycle event slot on an order awaiting a wall-clock timestamp."""

    role: MarkerRole
    event: EventKind
    timestamp: datetime | None = None
    block_number: int | None = None
    tx_hash: str | None = None

    @property
    def field_name(self) -> str:
        return marker_field(self.role, self.event)

    @property
    def is_present(self) -> bool:
        return self.block_number is not None or bool(self.tx_hash)

    @property
    def is_pending(self) -> bool:
        return self.timestamp is None and self.is_present


@dataclass(slots=True)
class PendingRecord:
    """In-memory copy of one swap order taken for the duration of a cycle."""

    record_id: int
    order_id: str
    source_chain: str
    destination_chain: str
    markers: list[Marker] = field(default_factory=list)

    def marker(self, role: MarkerRole, event: EventKind) -> Marker | None:
        for candidate in self.markers:
            if candidate.role is role and candidate.event is event:
                return candidate
        return None

    def chain_for(self, role: MarkerRole) -> str:
        """User swaps live on the source chain, counterparty swaps on the destination."""

        return self.source_chain if role is MarkerRole.USER else self.destination_chain

    def pending_markers(self) -> list[Marker]:
        return [marker for marker in self.markers if marker.is_pending]

    def timestamp_fields(self) -> ResolvedFields:
        fields: ResolvedFields = {name: None for name in MARKER_FIELDS}
        for marker in self.markers:
            fields[marker.field_name] = marker.timestamp
        return fields
