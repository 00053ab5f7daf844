"""Token analysis: market pairs, social posts and position P&L for one token."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from traider.clients.base import RemoteFailure
from traider.clients.cookie import SignalClient
from traider.clients.dexscreener import DexScreenerClient, filter_pairs_by_age
from traider.models import MarketPair, PositionAnalysis, SocialItem, Token, TokenAnalysis
from traider.scoring import market_score

log = logging.getLogger("traider.analysis")


def position_analysis(token: Token, pairs: list[MarketPair]) -> PositionAnalysis:
    """ROI and unrealized P&L in native units, priced off the top pair.

    Cost basis is the average native price paid per unit. Without swap
    history it falls back to the current price, so ROI reads 0%.
    """
    if not token.has_position or not pairs:
        return PositionAnalysis()

    pair = pairs[0]
    price = pair.price_native
    amount = token.balance.amount
    cost_per_unit = token.balance.cost_basis_native or price

    current_value = price * amount
    roi = (price / cost_per_unit - 1) * 100 if cost_per_unit else 0.0
    return PositionAnalysis(
        current_price_native=price,
        current_price_usd=pair.price_usd,
        roi_native=roi,
        unrealized_pnl_native=current_value - cost_per_unit * amount,
        has_position=True,
    )


class TokenAnalyzer:
    """Collects everything the decision engine needs about a token."""

    def __init__(
        self,
        market: DexScreenerClient,
        signals: SignalClient,
        query_template: str = "{symbol} ${symbol}",
        max_social_results: int = 10,
    ):
        self.market = market
        self.signals = signals
        self.query_template = query_template
        self.max_social_results = max_social_results

    async def _social(self, token: Token) -> list[SocialItem]:
        query = self.query_template.format(symbol=token.symbol)
        try:
            return await self.signals.search(query, self.max_social_results)
        except RemoteFailure as e:
            log.warning("Social search failed for %s: %s", token.symbol, e)
            return []

    async def analyze(self, token: Token, now: datetime | None = None) -> TokenAnalysis:
        now = now or datetime.now(timezone.utc)
        raw_pairs, social = await asyncio.gather(
            self.market.get_pairs(token.address, token.chain_id, filter_by_age=False),
            self._social(token),
        )

        # Score the unfiltered top pair: the score's own age curves handle youth
        score = market_score(raw_pairs[0], now) if raw_pairs else None
        pairs = filter_pairs_by_age(raw_pairs, now)

        log.debug("Analyzed %s: %d pairs, %d posts, score=%s", token.symbol, len(pairs), len(social), score)
        return TokenAnalysis(
            market_analysis=pairs,
            social_analysis=social,
            position_analysis=position_analysis(token, pairs),
            market_score=score,
        )
