"""Per-chain RPC dialects that turn a block or transaction into a timestamp."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from loguru import logger

from .client import RateLimitedFetchClient
from .outcomes import FailureKind, ResolutionOutcome


class LookupMode(str, Enum):
    BY_HASH_WITH_BLOCK_FALLBACK = "by_hash_with_block_fallback"
    BY_BLOCK_ONLY = "by_block_only"
    UNSUPPORTED = "unsupported"


class RpcDialect(str, Enum):
    EVM = "evm"
    STARKNET = "starknet"
    UTXO = "utxo"


# Starknet JSON-RPC error codes for BLOCK_NOT_FOUND and TXN_HASH_NOT_FOUND.
STARKNET_BLOCK_NOT_FOUND = 24
STARKNET_TXN_HASH_NOT_FOUND = 29


def _parse_quantity(value: Any) -> int:
    """Decode an RPC quantity that may be a hex string or a plain integer."""

    if isinstance(value, bool):
        raise TypeError("boolean is not a quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    raise TypeError(f"unsupported quantity type {type(value).__name__}")


def _malformed(chain: str, what: str, exc: Exception) -> ResolutionOutcome:
    logger.warning("Malformed {} response from {}: {}", what, chain, exc)
    return ResolutionOutcome.failed(
        FailureKind.TRANSPORT_ERROR, f"{chain}: malformed {what} response ({exc})"
    )


@dataclass(frozen=True, slots=True)
class ChainAdapter:
    """Immutable endpoint configuration plus the protocol that speaks to it."""

    chain: str
    endpoint: str
    lookup_mode: LookupMode = LookupMode.BY_BLOCK_ONLY

    dialect: ClassVar[RpcDialect | None] = None

    async def block_timestamp(
        self, client: RateLimitedFetchClient, block_number: int
    ) -> ResolutionOutcome:
        raise NotImplementedError

    async def transaction_timestamp(
        self, client: RateLimitedFetchClient, tx_hash: str
    ) -> ResolutionOutcome:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class EvmAlchemyLikeAdapter(ChainAdapter):
    """Ethereum-style JSON-RPC (Alchemy, Hyperliquid EVM, Citrea, Monad)."""

    dialect: ClassVar[RpcDialect] = RpcDialect.EVM

    async def block_timestamp(
        self, client: RateLimitedFetchClient, block_number: int
    ) -> ResolutionOutcome:
        result = await client.rpc(
            self.endpoint, "eth_getBlockByNumber", [hex(block_number), False]
        )
        if not result.ok:
            return result.as_outcome()
        block = result.payload
        if not block:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"block {block_number} not found on {self.chain}"
            )
        try:
            return ResolutionOutcome.resolved(_parse_quantity(block["timestamp"]))
        except (KeyError, TypeError, ValueError) as exc:
            return _malformed(self.chain, "block", exc)

    async def transaction_timestamp(
        self, client: RateLimitedFetchClient, tx_hash: str
    ) -> ResolutionOutcome:
        result = await client.rpc(self.endpoint, "eth_getTransactionReceipt", [tx_hash])
        if not result.ok:
            return result.as_outcome()
        receipt = result.payload
        if not receipt or receipt.get("blockNumber") is None:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"no receipt for {tx_hash} on {self.chain}"
            )
        try:
            block_number = _parse_quantity(receipt["blockNumber"])
        except (TypeError, ValueError) as exc:
            return _malformed(self.chain, "receipt", exc)
        return await self.block_timestamp(client, block_number)


@dataclass(frozen=True, slots=True)
class StarknetRpcAdapter(ChainAdapter):
    dialect: ClassVar[RpcDialect] = RpcDialect.STARKNET

    async def block_timestamp(
        self, client: RateLimitedFetchClient, block_number: int
    ) -> ResolutionOutcome:
        result = await client.rpc(
            self.endpoint,
            "starknet_getBlockWithTxHashes",
            [{"block_number": block_number}],
            not_found_codes=(STARKNET_BLOCK_NOT_FOUND,),
        )
        if not result.ok:
            return result.as_outcome()
        block = result.payload
        if not block or block.get("timestamp") is None:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"block {block_number} not found on {self.chain}"
            )
        try:
            return ResolutionOutcome.resolved(_parse_quantity(block["timestamp"]))
        except (TypeError, ValueError) as exc:
            return _malformed(self.chain, "block", exc)

    async def transaction_timestamp(
        self, client: RateLimitedFetchClient, tx_hash: str
    ) -> ResolutionOutcome:
        result = await client.rpc(
            self.endpoint,
            "starknet_getTransactionReceipt",
            [tx_hash],
            not_found_codes=(STARKNET_TXN_HASH_NOT_FOUND,),
        )
        if not result.ok:
            return result.as_outcome()
        receipt = result.payload
        # Receipts of transactions still in the pending block carry no block number.
        if not receipt or receipt.get("block_number") is None:
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"{tx_hash} is not yet in a block on {self.chain}"
            )
        try:
            block_number = _parse_quantity(receipt["block_number"])
        except (TypeError, ValueError) as exc:
            return _malformed(self.chain, "receipt", exc)
        return await self.block_timestamp(client, block_number)


@dataclass(frozen=True, slots=True)
class UtxoIndexerAdapter(ChainAdapter):
    """Esplora-style REST indexer (mempool.space and compatibles).

    ``/blocks/{height}`` only returns a short window of blocks ending at
    ``height``, while ``/tx/{txid}/status`` answers for any confirmed
    transaction, which is why these chains default to hash-first lookups.
    """

    dialect: ClassVar[RpcDialect] = RpcDialect.UTXO

    async def block_timestamp(
        self, client: RateLimitedFetchClient, block_number: int
    ) -> ResolutionOutcome:
        result = await client.get_json(f"{self.endpoint}/blocks/{block_number}")
        if not result.ok:
            return result.as_outcome()
        blocks = result.payload
        if not isinstance(blocks, list):
            return _malformed(self.chain, "blocks", TypeError("expected a list"))
        try:
            for block in blocks:
                if _parse_quantity(block.get("height")) == block_number:
                    return ResolutionOutcome.resolved(_parse_quantity(block["timestamp"]))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            return _malformed(self.chain, "blocks", exc)
        return ResolutionOutcome.failed(
            FailureKind.NOT_FOUND,
            f"block {block_number} outside the indexer window for {self.chain}",
        )

    async def transaction_timestamp(
        self, client: RateLimitedFetchClient, tx_hash: str
    ) -> ResolutionOutcome:
        result = await client.get_json(f"{self.endpoint}/tx/{tx_hash}/status")
        if not result.ok:
            return result.as_outcome()
        status = result.payload
        if not isinstance(status, dict):
            return _malformed(self.chain, "tx status", TypeError("expected an object"))
        if not status.get("confirmed"):
            return ResolutionOutcome.failed(
                FailureKind.NOT_FOUND, f"{tx_hash} is unconfirmed on {self.chain}"
            )
        try:
            if status.get("block_time") is not None:
                return ResolutionOutcome.resolved(_parse_quantity(status["block_time"]))
            block_height = _parse_quantity(status["block_height"])
        except (KeyError, TypeError, ValueError) as exc:
            return _malformed(self.chain, "tx status", exc)
        return await self.block_timestamp(client, block_height)


@dataclass(frozen=True, slots=True)
class UnsupportedAdapter(ChainAdapter):
    """Placeholder for chains without a configured endpoint; never touches the network."""

    endpoint: str = ""
    lookup_mode: LookupMode = LookupMode.UNSUPPORTED

    async def block_timestamp(
        self, client: RateLimitedFetchClient, block_number: int
    ) -> ResolutionOutcome:
        return ResolutionOutcome.failed(FailureKind.UNSUPPORTED_CHAIN, self.chain)

    async def transaction_timestamp(
        self, client: RateLimitedFetchClient, tx_hash: str
    ) -> ResolutionOutcome:
        return ResolutionOutcome.failed(FailureKind.UNSUPPORTED_CHAIN, self.chain)


ADAPTER_TYPES: dict[RpcDialect, type[ChainAdapter]] = {
    RpcDialect.EVM: EvmAlchemyLikeAdapter,
    RpcDialect.STARKNET: StarknetRpcAdapter,
    RpcDialect.UTXO: UtxoIndexerAdapter,
}


__all__ = [
    "ADAPTER_TYPES",
    "ChainAdapter",
    "EvmAlchemyLikeAdapter",
    "LookupMode",
    "RpcDialect",
    "StarknetRpcAdapter",
    "UnsupportedAdapter",
    "UtxoIndexerAdapter",
]
