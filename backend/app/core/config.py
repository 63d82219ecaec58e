from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SUPPORTED_CHAINS = [
    "arbitrum",
    "base",
    "bitcoin",
    "ethereum",
    "hyperliquid",
    "starknet",
    "bera",
]

LOOKUP_MODE_NAMES = {"by_hash_with_block_fallback", "by_block_only"}


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


def _split_csv(value: Any, *, field_name: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item for item in (part.strip() for part in value.split(",")) if item]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"{field_name} must be provided as a list or comma-separated string")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Echo SQL statements")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/analysis.db",
        description="SQLAlchemy compatible URL of the analysis database",
    )
    orders_table: str = Field(
        default="orders_3",
        description="Flat swap-order analysis table holding markers and resolved timestamps",
    )
    supported_chains: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_CHAINS),
        description="Chains whose markers are eligible for timestamp resolution",
    )
    chain_aliases: dict[str, str] = Field(
        default_factory=lambda: {"arbitrum": "ethereum"},
        description="Stored chain name -> chain whose RPC endpoint answers for it",
    )
    chain_lookup_modes: dict[str, str] = Field(
        default_factory=lambda: {"bitcoin": "by_hash_with_block_fallback"},
        description="Per-chain lookup mode overrides (by_hash_with_block_fallback|by_block_only)",
    )
    alchemy_token: str | None = Field(
        default=None,
        description="API key appended to Alchemy-hosted RPC endpoints",
    )
    rpc_url_ethereum: str | None = Field(
        default="https://eth-sepolia.g.alchemy.com/v2/",
        description="Ethereum JSON-RPC endpoint prefix (token appended)",
    )
    rpc_url_base: str | None = Field(
        default="https://base-sepolia.g.alchemy.com/v2/",
        description="Base JSON-RPC endpoint prefix (token appended)",
    )
    rpc_url_bera: str | None = Field(
        default=None,
        description="Berachain JSON-RPC endpoint (token appended as a path segment)",
    )
    rpc_url_starknet: str | None = Field(
        default=None,
        description="Starknet JSON-RPC endpoint prefix (token appended)",
    )
    rpc_url_hyperliquid: str | None = Field(
        default=None,
        description="Hyperliquid EVM JSON-RPC endpoint",
    )
    rpc_url_citrea: str | None = Field(default=None, description="Citrea JSON-RPC endpoint")
    rpc_url_monad: str | None = Field(
        default=None,
        description="Monad JSON-RPC endpoint prefix (token appended)",
    )
    rpc_url_bitcoin: str | None = Field(
        default=None,
        description="Esplora-style Bitcoin indexer base URL (e.g. https://mempool.space/testnet4/api)",
    )
    reconcile_chunk_size: int = Field(
        default=5,
        description="Number of records whose markers are resolved concurrently per chunk",
        ge=1,
    )
    rpc_max_attempts: int = Field(
        default=5,
        description="Attempts made against a rate-limited endpoint before giving up",
        ge=1,
    )
    rpc_backoff_base_seconds: float = Field(
        default=1.0,
        description="First backoff delay after a rate-limit response; doubled per attempt",
        gt=0,
    )
    rpc_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to each outbound RPC/indexer request",
        gt=0,
    )

    @field_validator("supported_chains", mode="after")
    @classmethod
    def _parse_supported_chains(cls, value: Any) -> list[str]:
        return [chain.lower() for chain in _split_csv(value, field_name="SUPPORTED_CHAINS")]

    @field_validator("chain_lookup_modes", mode="after")
    @classmethod
    def _validate_lookup_modes(cls, value: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for chain, mode in value.items():
            mode_name = str(mode).strip().lower()
            if mode_name not in LOOKUP_MODE_NAMES:
                raise ValueError(
                    f"CHAIN_LOOKUP_MODES entry for '{chain}' must be one of "
                    + ", ".join(sorted(LOOKUP_MODE_NAMES))
                )
            normalized[chain.lower()] = mode_name
        return normalized

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    def chain_endpoints(self) -> dict[str, str]:
        """Return fully-qualified endpoints for every chain with a usable URL."""

        token = self.alchemy_token or ""
        endpoints: dict[str, str] = {}

        def _with_suffix(url: str | None) -> str | None:
            # Alchemy-hosted URLs are unusable without the token.
            if not url or not token:
                return None
            return f"{url}{token}"

        for chain, url in (
            ("ethereum", _with_suffix(self.rpc_url_ethereum)),
            ("base", _with_suffix(self.rpc_url_base)),
            ("starknet", _with_suffix(self.rpc_url_starknet)),
            ("monad", _with_suffix(self.rpc_url_monad)),
            ("bera", f"{self.rpc_url_bera.rstrip('/')}/{token}" if self.rpc_url_bera and token else None),
            ("hyperliquid", self.rpc_url_hyperliquid),
            ("citrea", self.rpc_url_citrea),
            ("bitcoin", self.rpc_url_bitcoin.rstrip("/") if self.rpc_url_bitcoin else None),
        ):
            if url:
                endpoints[chain] = url
        return endpoints


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
