"""Tests for the shared HTTP plumbing: limiters, cache, base client, RPC fallback, X client."""

from __future__ import annotations

import httpx
import pytest

from traider.clients.base import BaseClient, RateLimiter, RemoteFailure, ResponseCache, RPCFallbackClient
from traider.clients.x_api import XClient
from traider.utils.rate_limiter import MinIntervalLimiter
from tests.mocks.fake_clock import FakeClock


class TestRateLimiter:

    def test_bucket_drains_then_waits(self):
        clock = FakeClock()
        limiter = RateLimiter(max_per_second=2, clock=clock)

        assert limiter.acquire() == 0
        assert limiter.acquire() == 0
        assert limiter.acquire() == pytest.approx(0.5)

        clock.advance(1)
        assert limiter.acquire() == 0


class TestMinIntervalLimiter:

    @pytest.mark.asyncio
    async def test_spacing(self):
        clock = FakeClock()
        limiter = MinIntervalLimiter.per_minute(10, clock=clock, sleep=clock.sleep)

        assert await limiter.wait() == 0
        clock.advance(2)
        assert await limiter.wait() == pytest.approx(4)
        clock.advance(10)
        assert await limiter.wait() == 0
        assert limiter.call_count == 3
        assert clock.sleeps == [pytest.approx(4)]


class TestResponseCache:

    def test_expiry(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=60, clock=clock)
        cache.set("a", [1])

        clock.advance(59)
        assert cache.get("a") == [1]
        clock.advance(1)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=60, clock=clock)
        cache.set("old", 1)
        clock.advance(30)
        cache.set("new", 2)
        clock.advance(30)

        assert cache.purge_expired() == 1
        assert cache.get("new") == 2


def _client(handler, **kwargs) -> BaseClient:
    return BaseClient(
        base_url="https://api.test",
        provider_name="test",
        backoff_base=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestBaseClient:

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        assert await _client(handler).get("/x") == {"ok": True}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, text="missing")

        with pytest.raises(RemoteFailure) as exc:
            await _client(handler).get("/x")
        assert exc.value.status_code == 404
        assert exc.value.retryable is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limited_gives_up(self):
        with pytest.raises(RemoteFailure) as exc:
            await _client(lambda r: httpx.Response(429), max_retries=1).get("/x")
        assert exc.value.status_code == 429
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        with pytest.raises(RemoteFailure, match="Invalid JSON"):
            await _client(lambda r: httpx.Response(200, text="<html>")).get("/x")

    @pytest.mark.asyncio
    async def test_read_error_retried_then_wrapped(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadError("connection reset", request=request)

        with pytest.raises(RemoteFailure, match="Transport error to test") as exc:
            await _client(handler, max_retries=2).get("/x")
        assert exc.value.retryable is True
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_cached_get(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"n": len(calls)})

        client = _client(handler)
        assert await client.get("/x", params={"a": 1}, cache_ttl=60) == {"n": 1}
        assert await client.get("/x", params={"a": 1}, cache_ttl=60) == {"n": 1}
        assert await client.get("/x", params={"a": 2}, cache_ttl=60) == {"n": 2}


class TestRPCFallback:

    @pytest.mark.asyncio
    async def test_falls_back_to_next_endpoint(self):
        def handler(request):
            if request.url.host == "primary.test":
                return httpx.Response(403, text="forbidden")
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": 42})

        rpc = RPCFallbackClient(
            [{"url": "https://primary.test", "provider": "primary"}, {"url": "https://backup.test", "provider": "backup"}],
            transport=httpx.MockTransport(handler),
        )
        assert (await rpc.call("getSlot"))["result"] == 42

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self):
        rpc = RPCFallbackClient(
            [{"url": "https://a.test", "provider": "a"}, {"url": "https://b.test", "provider": "b"}],
            transport=httpx.MockTransport(lambda r: httpx.Response(401)),
        )
        with pytest.raises(RemoteFailure, match="All RPC endpoints failed"):
            await rpc.call("getSlot")

    @pytest.mark.asyncio
    async def test_rpc_error_returned_untouched(self):
        reply = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32002, "message": "simulation failed"}}
        rpc = RPCFallbackClient(
            [{"url": "https://a.test"}],
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=reply)),
        )
        assert (await rpc.call("sendTransaction", ["tx"]))["error"]["code"] == -32002


class TestXClient:

    @pytest.mark.asyncio
    async def test_post_tweet(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"data": {"id": "1849", "text": "Aped $BOAR. DYOR"}})

        client = XClient(access_token="tok", transport=httpx.MockTransport(handler))
        posted = await client.post_tweet("Aped $BOAR. DYOR")

        assert posted["id"] == "1849"
        assert seen[0].url.path == "/2/tweets"
        assert seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_too_long(self):
        client = XClient(access_token="tok", transport=httpx.MockTransport(lambda r: httpx.Response(201, json={})))
        with pytest.raises(ValueError):
            await client.post_tweet("x" * 281)
