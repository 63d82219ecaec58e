"""Domain models representing swap orders and their event markers."""

from .models import (
    MARKER_FIELDS,
    EventKind,
    Marker,
    MarkerRole,
    PendingRecord,
    ResolvedFields,
    marker_field,
)

__all__ = [
    "MARKER_FIELDS",
    "EventKind",
    "Marker",
    "MarkerRole",
    "PendingRecord",
    "ResolvedFields",
    "marker_field",
]
