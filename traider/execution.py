"""Execution engine: act on a trade decision through the token's chain venue.

Decisions below the confidence floor become a successful no-op HOLD. In
dry-run mode the recommendation is mirrored without touching a venue.
Everything else is routed to the venue registered for token.chain_id;
swaps go through slippage escalation. No exception escapes execute().
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping

from traider.config import ConfigError, ExecutionConfig
from traider.models import ExecutionResult, MarketPair, Recommendation, Token, TradeDecision
from traider.venues.base import NoBalance, UnsupportedChain, VenueAdapter, swap_with_retry

log = logging.getLogger("traider.execution")

SUPPORTED_CHAINS = ("solana", "base")


def buy_amount(confidence: float, config: ExecutionConfig) -> float:
    """Linear position size between min and max buy, clamped."""
    span = config.max_confidence - config.min_confidence
    fraction = (confidence - config.min_confidence) / span if span > 0 else 1.0
    fraction = max(0.0, min(1.0, fraction))
    return config.min_buy_amount + fraction * (config.max_buy_amount - config.min_buy_amount)


class ExecutionEngine:
    def __init__(
        self,
        venues: Mapping[str, VenueAdapter],
        config: ExecutionConfig | None = None,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.venues = {chain.lower(): venue for chain, venue in venues.items()}
        self.config = config or ExecutionConfig()
        self.dry_run = dry_run
        self._sleep = sleep

    def venue_for(self, chain_id: str) -> VenueAdapter:
        chain = chain_id.lower()
        if chain not in SUPPORTED_CHAINS:
            raise UnsupportedChain(f"Unsupported chain: {chain_id}")
        venue = self.venues.get(chain)
        if venue is None:
            raise ConfigError(f"No venue configured for chain {chain}")
        return venue

    async def _swap(self, venue: VenueAdapter, from_token: str, to_token: str, amount: float):
        return await swap_with_retry(
            venue,
            from_token,
            to_token,
            amount,
            initial_slippage=self.config.initial_slippage_pct,
            max_slippage=self.config.max_slippage_pct,
            max_attempts=self.config.max_attempts,
            retry_delay=self.config.retry_delay_seconds,
            sleep=self._sleep,
        )

    async def execute(
        self,
        token: Token,
        decision: TradeDecision,
        market_data: list[MarketPair] | None = None,
    ) -> ExecutionResult:
        market_data = market_data or []
        action = decision.recommendation

        def result(success: bool, action: Recommendation = action, **kwargs) -> ExecutionResult:
            return ExecutionResult(
                success=success, action=action, token=token, decision=decision, market_data=market_data, **kwargs,
            )

        if decision.confidence < self.config.min_confidence:
            log.info("%s: confidence %.0f below %.0f, holding", token.symbol, decision.confidence, self.config.min_confidence)
            return result(True, Recommendation.HOLD, error="Confidence too low")

        if self.dry_run:
            log.info("[DRY RUN] Would %s %s (confidence %.0f)", action.value, token.symbol, decision.confidence)
            return result(True)

        if action == Recommendation.HOLD:
            return result(True)

        try:
            venue = self.venue_for(token.chain_id)

            if action == Recommendation.BUY:
                amount = buy_amount(decision.confidence, self.config)
                swap = await self._swap(venue, venue.native_symbol, token.address, amount)
                log.info("Bought %s with %.4f %s: %s", token.symbol, amount, venue.native_symbol, swap.reference)
                return result(True, amount=amount, reference=swap.reference)

            if not token.has_position:
                raise NoBalance("No balance")
            amount = token.balance.amount
            swap = await self._swap(venue, token.address, venue.native_symbol, amount)
            log.info("Sold %s %s for %.6f %s: %s", amount, token.symbol, swap.to_amount, venue.native_symbol, swap.reference)
            return result(True, amount=amount, reference=swap.reference)

        except Exception as e:
            log.error("Execution of %s %s failed: %s", action.value, token.symbol, e)
            return result(False, error=str(e))
