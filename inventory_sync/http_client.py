"""Rate-limited HTTP client for the Shopify Admin API.

Wraps an httpx.AsyncClient with the behaviour bulk sync jobs need:
  - 429: wait Retry-After seconds (or base * 2**attempt) and retry,
    bounded by max_attempts, then raise ShopifyRateLimitError
  - any other status: returned as-is so the connector classifies it
  - transport errors: same bounded backoff, then ShopifyConnectionError
  - mutating calls (POST/PUT/PATCH/DELETE) are spaced at least
    pacing_delay apart even when everything succeeds

sleep and clock are injectable so tests never wait for real.

Usage:
    client = RateLimitedClient(headers={"X-Shopify-Access-Token": token})
    resp = await client.request("GET", url, params={"limit": 50})
    await client.aclose()
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from .config import settings
from .exceptions import ShopifyConnectionError, ShopifyRateLimitError

log = logging.getLogger(__name__)

_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; None when absent or not numeric."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RateLimitedClient:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        headers: dict | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        pacing_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            limits=_LIMITS,
            follow_redirects=False,
        )
        self.headers = dict(headers or {})
        self.max_attempts = max(1, max_attempts or settings.http_max_attempts)
        self.base_delay = settings.http_backoff_base_seconds if base_delay is None else base_delay
        self.pacing_delay = settings.http_pacing_seconds if pacing_delay is None else pacing_delay
        self._sleep = sleep
        self._clock = clock
        self._last_mutation_at: float | None = None

        # Counters surfaced in sync logs
        self.api_calls = 0
        self.rate_limit_hits = 0

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff for a 1-based attempt number: 2s, 4s, 8s at base 1s."""
        return self.base_delay * (2**attempt)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        method = method.upper()
        mutating = method in MUTATING_METHODS
        if mutating:
            await self._pace()

        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            for attempt in range(1, self.max_attempts + 1):
                is_last = attempt >= self.max_attempts
                self.api_calls += 1
                try:
                    resp = await self._client.request(method, url, headers=headers, **kwargs)
                except httpx.TransportError as e:
                    if is_last:
                        raise ShopifyConnectionError(
                            f"{method} {url} failed after {self.max_attempts} attempts", str(e)
                        ) from e
                    delay = self.backoff_delay(attempt)
                    log.warning(f"{method} {url} transport error ({e}); retrying in {delay}s")
                    await self._sleep(delay)
                    continue

                if resp.status_code != 429:
                    return resp

                self.rate_limit_hits += 1
                retry_after = parse_retry_after(resp.headers.get("Retry-After"))
                if is_last:
                    raise ShopifyRateLimitError(
                        f"{method} {url} still rate limited after {self.max_attempts} attempts",
                        retry_after=retry_after,
                    )
                delay = retry_after if retry_after is not None else self.backoff_delay(attempt)
                log.warning(
                    f"Rate limited on {method} {url} (attempt {attempt}/{self.max_attempts}); "
                    f"sleeping {delay}s"
                )
                await self._sleep(delay)
        finally:
            if mutating:
                self._last_mutation_at = self._clock()
        # max_attempts >= 1 guarantees the loop returned or raised
        raise AssertionError("unreachable")

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def _pace(self) -> None:
        if self._last_mutation_at is None or self.pacing_delay <= 0:
            return
        remaining = self.pacing_delay - (self._clock() - self._last_mutation_at)
        if remaining > 0:
            await self._sleep(remaining)

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client:
            try:
                await self._client.aclose()
            except RuntimeError:
                pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
