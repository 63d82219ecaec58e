from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from loguru import logger

from app.core.config import Settings
from app.domain import EventKind, Marker, MarkerRole, PendingRecord


def build_record(
    record_id: int = 1,
    *,
    order_id: str | None = None,
    source_chain: str = "ethereum",
    destination_chain: str = "bitcoin",
    **slots: dict[str, Any],
) -> PendingRecord:
    """Build a record; ``slots`` maps e.g. ``user_init`` to Marker keyword arguments."""

    markers: list[Marker] = []
    for role in MarkerRole:
        for event in EventKind:
            values = slots.get(f"{role.value}_{event.value}", {})
            markers.append(Marker(role=role, event=event, **values))
    return PendingRecord(
        record_id=record_id,
        order_id=order_id or f"order-{record_id}",
        source_chain=source_chain,
        destination_chain=destination_chain,
        markers=markers,
    )


@pytest.fixture
def make_record() -> Callable[..., PendingRecord]:
    return build_record


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'analysis.db'}",
        alchemy_token="test-token",
        rpc_url_starknet="https://starknet.example/rpc/v0_7/",
        rpc_url_hyperliquid="https://hyperliquid.example/evm",
        rpc_url_bitcoin="https://indexer.example/api/",
        rpc_backoff_base_seconds=0.01,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def log_messages() -> list[str]:
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)
