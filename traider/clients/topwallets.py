"""Top-wallets client: tokens the most profitable wallets traded in the last hour.

Environment:
    TRAIDER_TOPWALLETS_API_URL: service base URL (required)
    TRAIDER_TOPWALLETS_API_KEY: bearer key (required)
"""

from __future__ import annotations

import logging

import httpx

from traider.clients.base import BaseClient, RemoteFailure
from traider.config import require_env
from traider.models import Token

log = logging.getLogger("traider.topwallets")


class TopWalletsClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = BaseClient(
            base_url=require_env("TRAIDER_TOPWALLETS_API_URL", base_url),
            headers={"Authorization": f"Bearer {require_env('TRAIDER_TOPWALLETS_API_KEY', api_key)}"},
            rate_limit=2.0,
            timeout=15.0,
            provider_name="topwallets",
            transport=transport,
        )

    async def get_top_wallet_tokens(self, limit: int = 3) -> list[Token]:
        """First `limit` Solana tokens from the top-wallets feed. Empty on failure."""
        try:
            data = await self._client.get("/api/bot/solana/top-wallets-token")
        except RemoteFailure as e:
            log.warning("Top wallets fetch failed: %s", e)
            return []

        if not isinstance(data, dict) or not data.get("success"):
            log.warning("Top wallets fetch failed: %s", data.get("message") if isinstance(data, dict) else data)
            return []

        tokens = []
        for row in ((data.get("data") or {}).get("tokens") or [])[:limit]:
            address = row.get("address") or ""
            if not address:
                continue
            symbol = row.get("symbol") or address[:6]
            tokens.append(Token(symbol=symbol, name=row.get("name") or symbol, address=address, chain_id="solana"))
        return tokens

    async def close(self) -> None:
        await self._client.close()
