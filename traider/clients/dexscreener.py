"""DexScreener API client: free, no-auth trending tokens and pair data.

Endpoints:
- Token boosts (top/v1): most boosted tokens, used as the trending feed
- Tokens (v1): batch lookup of pairs for up to 30 addresses, used to
  resolve boosted addresses into symbols and names
- Token pairs (v1): every pair for one token, used for market analysis

Public methods never raise: failures are logged and come back empty.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from traider.models import MarketPair, Period, Token
from traider.utils.retry import with_retry

log = logging.getLogger("traider.dexscreener")

# /tokens/v1 accepts at most 30 comma-separated addresses
MAX_BATCH_ADDRESSES = 30


class DexScreenerClient:
    """DexScreener free API, no auth required.

    Rate limit: ~60 req/min for boosts, ~300 req/min for pair lookups.
    """

    BASE_URL = "https://api.dexscreener.com"

    def __init__(self, timeout: float = 12.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "Accept": "application/json",
                "User-Agent": "traider/0.1",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @with_retry
    async def _get_json(self, path: str) -> Any:
        resp = await self._client.get(f"{self.BASE_URL}{path}")
        resp.raise_for_status()
        return resp.json()

    async def get_boosted_tokens(self) -> list[dict[str, Any]]:
        """GET /token-boosts/top/v1 - tokens with the most active boosts.

        Entries carry tokenAddress, chainId, description, links, totalAmount.
        """
        data = await self._get_json("/token-boosts/top/v1")
        if isinstance(data, list):
            return data
        return data.get("data", data.get("tokens", []))

    async def get_tokens_pairs(self, chain: str, addresses: list[str]) -> list[dict[str, Any]]:
        """GET /tokens/v1/{chain}/{a,b,c} - pairs for several tokens at once."""
        if not addresses:
            return []
        data = await self._get_json(f"/tokens/v1/{chain}/{','.join(addresses[:MAX_BATCH_ADDRESSES])}")
        if isinstance(data, list):
            return data
        return data.get("pairs", [])

    async def get_trending(self, max_results: int = 10) -> list[Token]:
        """Top boosted tokens as Token records (no balance).

        Symbols and names are resolved from pair data; when a token has no
        pair yet, the address tail and boost description stand in.
        """
        try:
            boosted = await self.get_boosted_tokens()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("DexScreener trending fetch failed (%s): %s", type(e).__name__, e)
            return []

        entries = [b for b in boosted if b.get("tokenAddress")][:max_results]
        if not entries:
            log.info("DexScreener reported no trending tokens")
            return []

        by_chain: dict[str, list[str]] = {}
        for entry in entries:
            by_chain.setdefault(entry.get("chainId", ""), []).append(entry["tokenAddress"])

        identities: dict[str, dict[str, str]] = {}
        for chain, addresses in by_chain.items():
            try:
                pairs = await self.get_tokens_pairs(chain, addresses)
            except (httpx.HTTPError, ValueError) as e:
                log.warning("DexScreener symbol lookup failed for %s (%s): %s", chain, type(e).__name__, e)
                continue
            for pair in pairs:
                base = pair.get("baseToken") or {}
                addr = base.get("address", "")
                if addr and addr not in identities:
                    identities[addr] = base

        tokens = []
        for entry in entries:
            addr = entry["tokenAddress"]
            identity = identities.get(addr, {})
            tokens.append(Token(
                symbol=identity.get("symbol") or addr.split("/")[-1],
                name=identity.get("name") or entry.get("description") or addr,
                address=addr,
                chain_id=entry.get("chainId", ""),
            ))
        return tokens

    async def get_pairs(
        self,
        address: str,
        chain: str = "solana",
        filter_by_age: bool = True,
        now: datetime | None = None,
    ) -> list[MarketPair]:
        """GET /token-pairs/v1/{chain}/{address} - all pairs for a token.

        With filter_by_age (the default) statistics for reporting windows
        longer than the pair's age are removed.
        """
        try:
            data = await self._get_json(f"/token-pairs/v1/{chain}/{address}")
        except (httpx.HTTPError, ValueError) as e:
            log.warning("DexScreener pairs fetch failed for %s (%s): %s", address, type(e).__name__, e)
            return []

        raw_pairs = data if isinstance(data, list) else (data or {}).get("pairs") or []
        if not raw_pairs:
            log.warning("No pairs found for token %s on %s", address, chain)
            return []

        try:
            pairs = [MarketPair.model_validate(p) for p in raw_pairs if isinstance(p, dict)]
        except ValueError as e:
            log.warning("Malformed pair data for %s: %s", address, e)
            return []
        if filter_by_age:
            pairs = filter_pairs_by_age(pairs, now)
        return pairs


def filter_pair_by_age(pair: MarketPair, now: datetime | None = None) -> MarketPair:
    """Copy of pair keeping only statistics whose window fits the pair's age.

    A 3-minute-old pair has no m5 figure; a 2-hour-old pair keeps m5 and
    h1 but loses h6 and h24. Dropped periods are absent, never zero.
    """
    if pair.pair_created_at is None:
        return pair
    now = now or datetime.now(timezone.utc)
    age_seconds = (now - pair.pair_created_at).total_seconds()
    kept = {p.value for p in Period if age_seconds >= p.seconds}
    return pair.model_copy(update={
        "txns": {k: v for k, v in pair.txns.items() if k in kept},
        "volume": {k: v for k, v in pair.volume.items() if k in kept},
        "price_change": {k: v for k, v in pair.price_change.items() if k in kept},
    })


def filter_pairs_by_age(pairs: list[MarketPair], now: datetime | None = None) -> list[MarketPair]:
    now = now or datetime.now(timezone.utc)
    return [filter_pair_by_age(p, now) for p in pairs]
