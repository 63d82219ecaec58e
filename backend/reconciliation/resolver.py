from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from .adapters import ChainAdapter, LookupMode
from .client import RateLimitedFetchClient
from .outcomes import FailureKind, ResolutionOutcome
from .registry import ChainAdapterRegistry


# Failures after which the next strategy in line is worth trying. Throttling
# is not among them: the fallback would hit the same exhausted endpoint.
FALLBACK_ON = frozenset({FailureKind.NOT_FOUND, FailureKind.TRANSPORT_ERROR})

Strategy = tuple[str, Callable[[], Awaitable[ResolutionOutcome]]]


class BlockTimestampResolver:
    """Resolve block numbers and transaction hashes to Unix timestamps."""

    def __init__(self, registry: ChainAdapterRegistry, client: RateLimitedFetchClient) -> None:
        self.registry = registry
        self.client = client

    async def resolve_by_block(self, chain: str, block_number: int | None) -> ResolutionOutcome:
        adapter = self.registry.adapter_for(chain)
        if adapter.lookup_mode is LookupMode.UNSUPPORTED:
            return ResolutionOutcome.failed(FailureKind.UNSUPPORTED_CHAIN, chain)
        if not block_number or block_number < 0:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"no usable block number for {chain}"
            )
        return await self._run(chain, [self._block_strategy(adapter, block_number)])

    async def resolve_by_transaction(
        self,
        chain: str,
        tx_hash: str | None,
        fallback_block_number: int | None = None,
    ) -> ResolutionOutcome:
        adapter = self.registry.adapter_for(chain)
        if adapter.lookup_mode is LookupMode.UNSUPPORTED:
            return ResolutionOutcome.failed(FailureKind.UNSUPPORTED_CHAIN, chain)

        strategies: list[Strategy] = []
        if tx_hash and tx_hash.strip():
            strategies.append(self._transaction_strategy(adapter, tx_hash.strip()))
        if fallback_block_number and fallback_block_number > 0:
            strategies.append(self._block_strategy(adapter, fallback_block_number))
        if not strategies:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"no transaction hash or block number for {chain}"
            )
        return await self._run(chain, strategies)

    def _block_strategy(self, adapter: ChainAdapter, block_number: int) -> Strategy:
        return (
            f"block {block_number}",
            lambda: adapter.block_timestamp(self.client, block_number),
        )

    def _transaction_strategy(self, adapter: ChainAdapter, tx_hash: str) -> Strategy:
        return (
            f"tx {tx_hash}",
            lambda: adapter.transaction_timestamp(self.client, tx_hash),
        )

    async def _run(self, chain: str, strategies: list[Strategy]) -> ResolutionOutcome:
        """Try strategies in order until one resolves or fails in a final way."""

        outcome = ResolutionOutcome.failed(FailureKind.NOT_FOUND)
        for index, (label, strategy) in enumerate(strategies):
            outcome = await strategy()
            if outcome.ok or outcome.failure not in FALLBACK_ON:
                return outcome
            if index + 1 < len(strategies):
                logger.debug(
                    "{} lookup on {} failed ({}); falling back to {}",
                    label,
                    chain,
                    outcome.detail or outcome.failure.value,
                    strategies[index + 1][0],
                )
        return outcome


__all__ = ["BlockTimestampResolver", "FALLBACK_ON"]
