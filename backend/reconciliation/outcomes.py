"""Result types exchanged between chain adapters and the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    UNSUPPORTED_CHAIN = "unsupported_chain"
    TRANSPORT_ERROR = "transport_error"
    RATE_LIMIT_EXHAUSTED = "rate_limit_exhausted"


@dataclass(slots=True, frozen=True)
class ResolutionOutcome:
    """Either a resolved Unix timestamp or a typed failure for one marker."""

    timestamp: int | None = None
    failure: FailureKind | None = None
    detail: str | None = None

    @classmethod
    def resolved(cls, timestamp: int) -> ResolutionOutcome:
        return cls(timestamp=int(timestamp))

    @classmethod
    def failed(cls, failure: FailureKind, detail: str | None = None) -> ResolutionOutcome:
        return cls(failure=failure, detail=detail)

    @property
    def ok(self) -> bool:
        # Zero is a legitimate epoch timestamp, so presence is what counts.
        return self.timestamp is not None

    def as_datetime(self) -> datetime | None:
        if self.timestamp is None:
            return None
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Decoded response body of one outbound call, or the reason there is none."""

    payload: Any = None
    failure: FailureKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def as_outcome(self) -> ResolutionOutcome:
        return ResolutionOutcome.failed(self.failure or FailureKind.TRANSPORT_ERROR, self.detail)


__all__ = ["FailureKind", "FetchResult", "ResolutionOutcome"]
