"""Base HTTP client for the traider API layer.

Provides:
- Rate limiting (token bucket per client)
- Retry with exponential backoff on 429 / 5xx / connection errors
- Response caching (TTL-based)
- RPC fallback across JSON-RPC endpoints
- RemoteFailure as the single upstream error type

All API clients wrap one of these.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx


@dataclass
class RateLimiter:
    """Simple token-bucket rate limiter."""

    max_per_second: float
    clock: Callable[[], float] = time.monotonic
    _tokens: float = field(init=False)
    _last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        self._tokens = self.max_per_second
        self._last_refill = self.clock()

    def acquire(self) -> float:
        """Acquire a token. Returns wait time in seconds (0 if immediate)."""
        now = self.clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.max_per_second, self._tokens + elapsed * self.max_per_second)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0

        return (1.0 - self._tokens) / self.max_per_second


@dataclass
class CacheEntry:
    """Cached payload and the time it was stored."""

    payload: Any
    timestamp: float


class ResponseCache:
    """In-memory TTL cache. Expiry is measured against the injected clock."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            del self._store[key]
            return None
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        self._store[key] = CacheEntry(payload=payload, timestamp=self._clock())

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._store.items() if now - e.timestamp >= self.ttl_seconds]
        for key in expired:
            del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


class RemoteFailure(Exception):
    """An upstream service failed or rejected a request."""

    def __init__(self, message: str, status_code: int = 0, provider: str = "", retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.retryable = retryable


class BaseClient:
    """Base HTTP client with retry, rate limiting, and caching.

    Usage:
        client = BaseClient(
            base_url="https://api.example.com",
            headers={"Authorization": "Bearer xxx"},
            rate_limit=5.0,  # 5 req/sec
            timeout=10.0,
        )
        data = await client.get("/endpoint", params={"q": "test"}, cache_ttl=60)
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        rate_limit: float = 10.0,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 60.0,
        backoff_multiplier: float = 2.0,
        provider_name: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.provider_name = provider_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.backoff_multiplier = backoff_multiplier
        self._rate_limiter = RateLimiter(max_per_second=rate_limit)
        self._caches: dict[float, ResponseCache] = {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        cache_ttl: float = 0,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET request with rate limiting, retry, and optional caching."""
        cache = self._cache_for(cache_ttl)
        cache_key = f"GET:{path}:{sorted((params or {}).items())}"
        if cache is not None:
            cached = cache.get(cache_key)
            if cached is not None:
                return cached

        data = await self._request("GET", path, params=params, headers=headers)

        if cache is not None:
            cache.set(cache_key, data)
        return data

    async def post(
        self,
        path: str,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST request with rate limiting and retry."""
        return await self._request("POST", path, json_data=json_data, headers=headers)

    def _cache_for(self, ttl: float) -> ResponseCache | None:
        if ttl <= 0:
            return None
        if ttl not in self._caches:
            self._caches[ttl] = ResponseCache(ttl_seconds=ttl)
        return self._caches[ttl]

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Execute request with retry and backoff."""
        last_error: RemoteFailure | None = None
        delay = self.backoff_base

        for attempt in range(self.max_retries + 1):
            wait = self._rate_limiter.acquire()
            if wait > 0:
                await asyncio.sleep(wait)

            try:
                response = await self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_data,
                    headers=headers,
                )
                return self._parse(response)

            except httpx.TransportError as e:
                last_error = RemoteFailure(
                    f"Transport error to {self.provider_name}: {e}",
                    provider=self.provider_name,
                    retryable=True,
                )
            except RemoteFailure as e:
                last_error = e
                if not e.retryable:
                    raise

            if attempt < self.max_retries:
                await asyncio.sleep(min(delay, self.backoff_max))
                delay *= self.backoff_multiplier

        raise last_error or RemoteFailure(f"Request failed after {self.max_retries} retries")

    def _parse(self, response: httpx.Response) -> Any:
        if response.status_code == 429:
            raise RemoteFailure(
                f"Rate limited by {self.provider_name}",
                status_code=429,
                provider=self.provider_name,
                retryable=True,
            )
        if response.status_code >= 500:
            raise RemoteFailure(
                f"Server error from {self.provider_name}: {response.status_code}",
                status_code=response.status_code,
                provider=self.provider_name,
                retryable=True,
            )
        if response.status_code >= 400:
            raise RemoteFailure(
                f"Client error from {self.provider_name}: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
                provider=self.provider_name,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteFailure(
                f"Invalid JSON from {self.provider_name}: {e}",
                status_code=response.status_code,
                provider=self.provider_name,
            ) from e


class RPCFallbackClient:
    """JSON-RPC client with automatic fallback chain rotation.

    Tries the primary endpoint first, falls back to the next on failure.
    JSON-RPC level errors (an "error" member in the reply) are returned to
    the caller untouched since they are not endpoint failures.
    """

    def __init__(self, endpoints: list[dict[str, Any]], transport: httpx.AsyncBaseTransport | None = None):
        self._clients: list[BaseClient] = [
            BaseClient(
                base_url=ep["url"],
                rate_limit=ep.get("rate_limit", 10.0),
                timeout=ep.get("timeout_seconds", 15.0),
                provider_name=ep.get("provider", "rpc"),
                max_retries=1,  # Quick fail per endpoint, fallback handles the rest
                transport=transport,
            )
            for ep in endpoints
        ]
        self._next_id = 0

    async def call(self, method: str, params: list[Any] | None = None) -> dict[str, Any]:
        """Send one JSON-RPC call. Returns the full reply dict."""
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params or []}
        errors: list[str] = []
        for client in self._clients:
            try:
                return await client.post("", json_data=payload)
            except RemoteFailure as e:
                errors.append(f"{client.provider_name}: {e}")

        raise RemoteFailure(
            f"All RPC endpoints failed: {'; '.join(errors)}",
            provider="rpc_fallback",
        )

    async def close(self) -> None:
        for client in self._clients:
            await client.close()
