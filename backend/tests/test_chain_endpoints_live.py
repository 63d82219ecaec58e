from __future__ import annotations

import asyncio

import pytest

from reconciliation.adapters import UtxoIndexerAdapter
from reconciliation.client import RateLimitedFetchClient
from reconciliation.outcomes import FailureKind

# Halving block; its timestamp is fixed forever.
HALVING_HEIGHT = 840000
HALVING_TIMESTAMP = 1713571767


@pytest.mark.network
def test_public_bitcoin_indexer_resolves_halving_block():
    adapter = UtxoIndexerAdapter(chain="bitcoin", endpoint="https://mempool.space/api")

    async def _main():
        async with RateLimitedFetchClient(max_attempts=2, backoff_base_seconds=1.0, timeout=10.0) as client:
            return await adapter.block_timestamp(client, HALVING_HEIGHT)

    outcome = asyncio.run(_main())
    if outcome.failure in {FailureKind.TRANSPORT_ERROR, FailureKind.RATE_LIMIT_EXHAUSTED}:
        pytest.skip(f"Bitcoin indexer unavailable: {outcome.detail}")

    assert outcome.timestamp == HALVING_TIMESTAMP
