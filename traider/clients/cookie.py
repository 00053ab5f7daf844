"""Cookie social-signal client: rate-limited, cached tweet search.

Used by the token analyzer to pull recent posts mentioning a token.
Upstream allows 10 requests/minute with a weighted budget, so every
outbound request goes through a minimum-interval limiter and results are
cached for 20 minutes per (query, max_results).

Environment:
    TRAIDER_COOKIE_API_KEY: Cookie API key (required)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from traider.clients.base import BaseClient, ResponseCache
from traider.config import SignalConfig, require_env
from traider.models import SocialItem, relative_age
from traider.scoring import social_score
from traider.utils.async_batch import chunked
from traider.utils.rate_limiter import MinIntervalLimiter

log = logging.getLogger("traider.signals")


def _iso(moment: datetime) -> str:
    """UTC timestamp with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_social_item(raw: dict[str, Any], now: datetime) -> SocialItem:
    """Map one provider tweet to an enriched SocialItem."""
    created = raw.get("createdAt")
    created_at = now
    if isinstance(created, str) and created:
        try:
            created_at = datetime.fromisoformat(created.replace("Z", "+00:00"))
        except ValueError:
            log.debug("Unparseable createdAt %r, using now", created)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    text = raw.get("text") or ""
    item = SocialItem(
        author=raw.get("authorUsername") or "",
        created_at=created_at,
        text=text,
        likes=raw.get("likesCount") or 0,
        replies=raw.get("repliesCount") or 0,
        reposts=raw.get("retweetsCount") or 0,
        quotes=raw.get("quotesCount") or 0,
        impressions=raw.get("impressionsCount") or 0,
        engagements=raw.get("engagementsCount") or 0,
        smart_engagement=raw.get("smartEngagementPoints") or 0,
        matching_score=raw.get("matchingScore") or 0.0,
        is_reply=bool(raw.get("isReply")),
        is_quote=bool(raw.get("isQuote")),
        age=relative_age(created_at, now),
        clean_text=text.replace("\r", " ").replace("\n", " "),
    )
    item.score = social_score(item)
    return item


class SignalClient:
    """Cookie hackathon API: tweet search with cache and rate limit.

    Every cache miss issues exactly one upstream request. Identical
    concurrent searches share a per-key lock, so only the first one goes
    upstream and the rest read its cached result.
    """

    def __init__(
        self,
        api_key: str | None = None,
        config: SignalConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = require_env("TRAIDER_COOKIE_API_KEY", api_key)
        self.config = config or SignalConfig()
        self._sleep = sleep
        self._now = wall_clock
        self._cache = ResponseCache(ttl_seconds=self.config.cache_ttl_seconds, clock=clock)
        self._limiter = MinIntervalLimiter.per_minute(self.config.requests_per_minute, clock=clock, sleep=sleep)
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._client = BaseClient(
            base_url=self.config.base_url,
            headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
            rate_limit=1000.0,  # pacing is owned by the min-interval limiter
            timeout=self.config.timeout,
            max_retries=0,
            provider_name="cookie",
            transport=transport,
        )

    @property
    def request_count(self) -> int:
        """Outbound requests issued so far."""
        return self._limiter.call_count

    @property
    def effective_rpm(self) -> int:
        """Requests/minute affordable under the weighted budget."""
        return self.config.weighted_budget_per_minute // self.config.request_weight

    @property
    def batch_size(self) -> int:
        return max(1, min(self.config.max_batch_size, self.effective_rpm))

    @property
    def batch_delay(self) -> float:
        if self.config.batch_delay_seconds is not None:
            return self.config.batch_delay_seconds
        return 60.0 * self.batch_size / self.effective_rpm

    async def search(self, query: str, max_results: int = 10) -> list[SocialItem]:
        """Search recent posts (trailing lookback window) for query.

        Raises RemoteFailure when the provider fails.
        """
        if self._cache.purge_expired():
            self._key_locks = {
                k: lock for k, lock in self._key_locks.items()
                if lock.locked() or self._cache.get(k) is not None
            }
        key = json.dumps({"query": query, "max_results": max_results}, sort_keys=True)

        lock = self._key_locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(key)
            if cached is not None:
                log.debug("Signal cache hit for %r", query)
                return cached

            await self._limiter.wait()
            items = await self._fetch(query, max_results)
            self._cache.set(key, items)
            return items

    async def search_many(self, queries: list[str], max_results: int = 10) -> list[SocialItem]:
        """Run several searches in weighted-budget batches.

        Members of one batch run concurrently (still paced by the
        limiter); consecutive batches are separated by batch_delay.
        Results come back flattened in query order.
        """
        results: list[SocialItem] = []
        batches = chunked(queries, self.batch_size)
        for i, batch in enumerate(batches):
            if i > 0:
                await self._sleep(self.batch_delay)
            batch_results = await asyncio.gather(*[self.search(q, max_results) for q in batch])
            for items in batch_results:
                results.extend(items)
        return results

    async def _fetch(self, query: str, max_results: int) -> list[SocialItem]:
        now = self._now()
        start = now - timedelta(days=self.config.lookback_days)
        data = await self._client.get(
            f"/search/{quote(query, safe='')}",
            params={
                "from": _iso(start),
                "to": _iso(now),
                "max_results": max_results,
            },
        )
        raw_items = data.get("ok") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            log.warning("Unexpected signal payload for %r, treating as empty", query)
            return []
        return [parse_social_item(raw, now) for raw in raw_items if isinstance(raw, dict)]

    async def close(self) -> None:
        await self._client.close()
