"""Moralis API clients: wallet portfolio, swap history, token discovery.

PortfolioClient reads the agent's own Solana wallet (holdings and swap
history, from which an average native cost basis is derived).
MoralisClient queries the EVM discovery index for tokens that
experienced wallets are accumulating.

Environment:
    TRAIDER_MORALIS_API_KEY: Moralis API key (required)
    TRAIDER_SOLANA_PUBLIC_KEY: wallet address to read (required for portfolio)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from traider.clients.base import BaseClient, RemoteFailure
from traider.config import require_env
from traider.models import Holdings, SwapTransaction, Token, TokenBalance

log = logging.getLogger("traider.moralis")

SOLANA_GATEWAY_URL = "https://solana-gateway.moralis.io"
DEEP_INDEX_URL = "https://deep-index.moralis.io/api/v2.2"

PORTFOLIO_CACHE_TTL = 60.0

# Moralis hex chain ids -> our chain ids
CHAIN_IDS = {
    "0x1": "ethereum",
    "0x2105": "base",
    "0x38": "bsc",
    "solana": "solana",
}

EXPERIENCED_BUYER_FILTERS = {
    "one_week_experienced_net_buyers_change": 10,
    "min_market_cap": 100_000_000,
    "twitter_followers": 10_000,
    "one_month_volume_change_usd": 10_000,
    "security_score": 70,
    "one_month_price_percent_change_usd": 1,
}


def normalize_chain_id(chain_id: str) -> str:
    return CHAIN_IDS.get(chain_id.lower(), chain_id.lower())


def compute_cost_basis(swaps: list[SwapTransaction], token_address: str) -> float:
    """Average native cost per unit still held, replayed from swap history.

    Buys add the tokens received and the native spent; sells remove the
    tokens sent and the native received. Returns 0 when nothing is held.
    """
    target = token_address.lower()
    net_tokens = 0.0
    total_cost = 0.0
    for swap in swaps:
        kind = swap.transaction_type.lower()
        if kind == "buy" and swap.bought.address.lower() == target:
            net_tokens += abs(swap.bought.amount)
            total_cost += abs(swap.sold.amount)
        elif kind == "sell" and swap.sold.address.lower() == target:
            net_tokens -= abs(swap.sold.amount)
            total_cost -= abs(swap.bought.amount)
    if net_tokens <= 0:
        return 0.0
    return total_cost / net_tokens


class PortfolioClient:
    """Moralis Solana gateway: holdings and swap history for one wallet."""

    def __init__(
        self,
        wallet_address: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = require_env("TRAIDER_MORALIS_API_KEY", api_key)
        self.wallet_address = require_env("TRAIDER_SOLANA_PUBLIC_KEY", wallet_address)
        self._client = BaseClient(
            base_url=SOLANA_GATEWAY_URL,
            headers={"X-API-Key": self.api_key, "Accept": "application/json"},
            rate_limit=5.0,
            timeout=15.0,
            provider_name="moralis",
            transport=transport,
        )

    async def get_holdings(self) -> Holdings:
        """Native balance plus SPL token balances (cached briefly)."""
        data = await self._client.get(
            f"/account/mainnet/{self.wallet_address}/portfolio",
            cache_ttl=PORTFOLIO_CACHE_TTL,
        )
        native = (data.get("nativeBalance") or {}).get("solana", 0)
        tokens = []
        for raw in data.get("tokens") or []:
            mint = raw.get("mint", "")
            if not mint:
                continue
            tokens.append(Token(
                symbol=raw.get("symbol") or mint[:6],
                name=raw.get("name") or "",
                address=mint,
                chain_id="solana",
                balance=TokenBalance(amount=float(raw.get("amount") or 0)),
            ))
        return Holdings(native_balance=float(native or 0), tokens=tokens)

    async def get_swap_history(self, token_address: str) -> list[SwapTransaction]:
        """Wallet swaps involving token_address, newest first."""
        data = await self._client.get(
            f"/account/mainnet/{self.wallet_address}/swaps",
            params={"order": "DESC", "tokenAddress": token_address},
        )
        return [SwapTransaction.model_validate(s) for s in data.get("result") or []]

    async def get_cost_basis(self, token_address: str) -> float:
        """Average native cost per unit; 0 when history is unavailable."""
        try:
            swaps = await self.get_swap_history(token_address)
        except (RemoteFailure, ValueError) as e:
            log.warning("Cost basis lookup failed for %s: %s", token_address, e)
            return 0.0
        return compute_cost_basis(swaps, token_address)

    async def get_tokens(self) -> list[Token]:
        """Held tokens with cost basis attached. Empty on failure."""
        try:
            holdings = await self.get_holdings()
        except (RemoteFailure, ValueError) as e:
            log.warning("Portfolio fetch failed: %s", e)
            return []

        bases = await asyncio.gather(*[self.get_cost_basis(t.address) for t in holdings.tokens])
        for token, basis in zip(holdings.tokens, bases):
            token.balance.cost_basis_native = basis
        return holdings.tokens

    async def close(self) -> None:
        await self._client.close()


class MoralisClient:
    """Moralis deep index: token discovery by experienced-buyer activity."""

    def __init__(self, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = require_env("TRAIDER_MORALIS_API_KEY", api_key)
        self._client = BaseClient(
            base_url=DEEP_INDEX_URL,
            headers={"X-API-Key": self.api_key, "Accept": "application/json"},
            rate_limit=5.0,
            timeout=15.0,
            provider_name="moralis",
            transport=transport,
        )

    async def get_experienced_buyer_tokens(
        self,
        chain: str = "base",
        filters: dict[str, Any] | None = None,
    ) -> list[Token]:
        """Tokens with rising experienced net buyers. Empty on failure."""
        params: dict[str, Any] = {"chain": chain, **EXPERIENCED_BUYER_FILTERS, **(filters or {})}
        try:
            data = await self._client.get("/discovery/tokens/experienced-buyers", params=params)
        except RemoteFailure as e:
            log.warning("Moralis discovery failed: %s", e)
            return []

        rows = data if isinstance(data, list) else (data or {}).get("result") or []
        tokens = []
        for row in rows:
            address = row.get("token_address", "")
            symbol = row.get("token_symbol", "")
            if not address or not symbol:
                continue
            tokens.append(Token(
                symbol=symbol,
                name=row.get("token_name") or symbol,
                address=address,
                chain_id=normalize_chain_id(row.get("chain_id") or chain),
            ))
        return tokens

    async def close(self) -> None:
        await self._client.close()
