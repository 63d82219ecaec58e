from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings

from .outcomes import FailureKind, FetchResult


RATE_LIMIT_RPC_CODES = {429, -32005}
RATE_LIMIT_MESSAGE_HINTS = ("rate limit", "too many requests", "exceeded its compute units")

SleepFn = Callable[[float], Awaitable[Any]]


def _is_rate_limit_error(code: Any, message: str) -> bool:
    if code in RATE_LIMIT_RPC_CODES:
        return True
    lowered = message.lower()
    return any(hint in lowered for hint in RATE_LIMIT_MESSAGE_HINTS)


class RateLimitedFetchClient:
    """Outbound HTTP/JSON-RPC calls that absorb throttling with exponential backoff.

    Rate-limit responses (HTTP 429 or a provider's rate-limit error object)
    are retried up to ``max_attempts`` times, waiting ``backoff_base_seconds``
    and doubling before each new attempt. Every other failure is returned to
    the caller immediately; nothing here raises.
    """

    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        backoff_base_seconds: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts or settings.rpc_max_attempts
        self.backoff_base_seconds = backoff_base_seconds or settings.rpc_backoff_base_seconds
        self.timeout = timeout or settings.rpc_timeout_seconds
        self.client = client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        self._owns_client = client is None
        self._sleep = sleep
        self._request_id = 0

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the ``attempt``-th throttled call (1-based)."""

        return self.backoff_base_seconds * (2 ** (attempt - 1))

    async def get_json(self, url: str) -> FetchResult:
        return await self._with_backoff(
            f"GET {url}", lambda: self._request("GET", url)
        )

    async def rpc(
        self,
        url: str,
        method: str,
        params: list[Any] | dict[str, Any],
        *,
        not_found_codes: Collection[int] = (),
    ) -> FetchResult:
        """Issue a JSON-RPC 2.0 call and return its ``result`` member."""

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        async def _attempt() -> FetchResult | None:
            result = await self._request("POST", url, json=payload)
            if result is None or not result.ok:
                return result
            body = result.payload
            if not isinstance(body, dict):
                return FetchResult(
                    failure=FailureKind.TRANSPORT_ERROR,
                    detail=f"{method}: unexpected response body",
                )
            error = body.get("error")
            if error:
                code = error.get("code") if isinstance(error, dict) else None
                message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
                if _is_rate_limit_error(code, message):
                    return None
                if code in not_found_codes:
                    return FetchResult(
                        failure=FailureKind.NOT_FOUND, detail=f"{method}: {message}"
                    )
                return FetchResult(
                    failure=FailureKind.TRANSPORT_ERROR,
                    detail=f"{method}: RPC error {code}: {message}",
                )
            return FetchResult(payload=body.get("result"))

        return await self._with_backoff(method, _attempt)

    async def _with_backoff(
        self,
        description: str,
        attempt_fn: Callable[[], Awaitable[FetchResult | None]],
    ) -> FetchResult:
        for attempt in range(1, self.max_attempts + 1):
            result = await attempt_fn()
            if result is not None:
                return result
            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Rate limited on {} (attempt {}/{}); backing off {:.1f}s",
                    description,
                    attempt,
                    self.max_attempts,
                    delay,
                )
                await self._sleep(delay)

        logger.warning(
            "Giving up on {} after {} rate-limited attempts", description, self.max_attempts
        )
        return FetchResult(
            failure=FailureKind.RATE_LIMIT_EXHAUSTED,
            detail=f"{description}: rate limited {self.max_attempts} times",
        )

    async def _request(
        self, method: str, url: str, *, json: dict[str, Any] | None = None
    ) -> FetchResult | None:
        """Perform one HTTP exchange; ``None`` signals a throttled response."""

        try:
            response = await self.client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            return FetchResult(
                failure=FailureKind.TRANSPORT_ERROR,
                detail=f"{type(exc).__name__}: {exc}",
            )

        if response.status_code == 429:
            return None
        if response.status_code == 404:
            return FetchResult(failure=FailureKind.NOT_FOUND, detail="HTTP 404")
        if response.is_redirect or response.is_error:
            return FetchResult(
                failure=FailureKind.TRANSPORT_ERROR,
                detail=f"HTTP {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError:
            return FetchResult(
                failure=FailureKind.TRANSPORT_ERROR, detail="malformed JSON response"
            )
        logger.debug("{} {} -> {}", method, response.request.url.host, response.status_code)
        return FetchResult(payload=body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "RateLimitedFetchClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
