"""Chain identifier -> resolution strategy lookup."""

from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

from app.core.config import Settings, get_settings

from .adapters import ADAPTER_TYPES, ChainAdapter, LookupMode, RpcDialect, UnsupportedAdapter


CHAIN_DIALECTS: dict[str, RpcDialect] = {
    "ethereum": RpcDialect.EVM,
    "base": RpcDialect.EVM,
    "bera": RpcDialect.EVM,
    "hyperliquid": RpcDialect.EVM,
    "citrea": RpcDialect.EVM,
    "monad": RpcDialect.EVM,
    "starknet": RpcDialect.STARKNET,
    "bitcoin": RpcDialect.UTXO,
}


class ChainAdapterRegistry:
    """Single source of truth for which adapter answers for a chain.

    Lookups fail closed: a chain that is not explicitly configured maps to an
    :class:`UnsupportedAdapter` instead of raising.
    """

    def __init__(
        self,
        adapters: Mapping[str, ChainAdapter],
        *,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._adapters = {name.lower(): adapter for name, adapter in adapters.items()}
        self._aliases = {key.lower(): value.lower() for key, value in (aliases or {}).items()}

    def _rpc_chain(self, chain: str) -> str:
        normalized = (chain or "").lower()
        return self._aliases.get(normalized, normalized)

    def adapter_for(self, chain: str) -> ChainAdapter:
        rpc_chain = self._rpc_chain(chain)
        adapter = self._adapters.get(rpc_chain)
        if adapter is None:
            return UnsupportedAdapter(chain=rpc_chain)
        return adapter

    def resolve_mode(self, chain: str) -> LookupMode:
        return self.adapter_for(chain).lookup_mode

    def chains(self) -> tuple[str, ...]:
        return tuple(sorted(self._adapters))


def build_registry(settings: Settings | None = None) -> ChainAdapterRegistry:
    """Create adapters for every chain with a known dialect and a configured endpoint."""

    settings = settings or get_settings()
    adapters: dict[str, ChainAdapter] = {}
    for chain, endpoint in settings.chain_endpoints().items():
        dialect = CHAIN_DIALECTS.get(chain)
        if dialect is None:
            logger.warning("No RPC dialect known for chain {}; leaving it unsupported", chain)
            continue
        mode_name = settings.chain_lookup_modes.get(chain, LookupMode.BY_BLOCK_ONLY.value)
        adapters[chain] = ADAPTER_TYPES[dialect](
            chain=chain, endpoint=endpoint, lookup_mode=LookupMode(mode_name)
        )

    logger.info(
        "Chain adapter registry ready: {}",
        ", ".join(f"{name}={adapter.lookup_mode.value}" for name, adapter in sorted(adapters.items()))
        or "no chains configured",
    )
    return ChainAdapterRegistry(adapters, aliases=settings.chain_aliases)


__all__ = ["CHAIN_DIALECTS", "ChainAdapterRegistry", "build_registry"]
