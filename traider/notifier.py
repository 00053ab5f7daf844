"""Trade announcements on X.

Only successful BUY/SELL executions with market data are announced, each
(symbol, action) at most once per process. Loss-driven sells are never
announced. Post text is written by the LLM from a short alert summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from traider.clients.base import RemoteFailure
from traider.clients.x_api import MAX_TWEET_CHARS, XClient
from traider.llm_utils import GenerationError, Generator
from traider.models import ExecutionResult, Recommendation

log = logging.getLogger("traider.notifier")

LOSS_MARKERS = ("stop loss", "loss")

TWEET_PROMPT = """Write one tweet announcing this trade in a casual degen voice.
Rules:
- Include the cashtag ${symbol}
- Under {limit} characters
- No emojis, no hashtags, no links
- End with "DYOR"

Trade: {action} ${symbol}
Price: ${price_usd}
24h change: {price_change_24h:.1f}%
Liquidity: ${liquidity:,.0f}
Confidence: {confidence:.0%}
Risk level: {risk_level}
Why: {reasoning}"""


@dataclass
class TradeAlert:
    symbol: str
    action: str
    price_usd: float
    price_change_24h: float
    liquidity: float
    confidence: float  # 0-1
    reasoning: str

    @property
    def risk_level(self) -> str:
        flags = sum([
            abs(self.price_change_24h) > 20,
            self.liquidity < 10_000,
            self.confidence < 0.6,
        ])
        if flags >= 2:
            return "HIGH"
        if flags == 1:
            return "MEDIUM"
        return "LOW"

    @classmethod
    def from_result(cls, result: ExecutionResult) -> TradeAlert:
        pair = result.market_data[0]
        return cls(
            symbol=result.token.symbol,
            action=result.action.value,
            price_usd=pair.price_usd,
            price_change_24h=pair.price_change.get("h24", 0.0),
            liquidity=pair.liquidity.usd or 0.0,
            confidence=result.decision.confidence / 100 if result.decision else 0.0,
            reasoning=result.decision.reasoning if result.decision else "",
        )


def is_loss_sell(result: ExecutionResult) -> bool:
    if result.action != Recommendation.SELL or result.decision is None:
        return False
    reasoning = result.decision.reasoning.lower()
    return any(marker in reasoning for marker in LOSS_MARKERS)


class TradeNotifier:
    def __init__(self, generator: Generator, poster: XClient | None = None, dry_run: bool = False):
        self.generator = generator
        self.poster = poster
        self.dry_run = dry_run
        self._announced: set[tuple[str, str]] = set()

    def _key(self, result: ExecutionResult) -> tuple[str, str]:
        return (result.token.symbol.upper(), result.action.value)

    def is_eligible(self, result: ExecutionResult) -> bool:
        return (
            result.success
            and result.action in (Recommendation.BUY, Recommendation.SELL)
            and result.token is not None
            and bool(result.market_data)
            and not is_loss_sell(result)
            and self._key(result) not in self._announced
        )

    async def post_trade_alert(self, alert: TradeAlert) -> bool:
        """Write and publish one alert. Never raises."""
        prompt = TWEET_PROMPT.format(
            symbol=alert.symbol,
            action=alert.action,
            price_usd=alert.price_usd,
            price_change_24h=alert.price_change_24h,
            liquidity=alert.liquidity,
            confidence=alert.confidence,
            risk_level=alert.risk_level,
            reasoning=alert.reasoning,
            limit=MAX_TWEET_CHARS,
        )
        try:
            text = (await self.generator.generate_text(prompt))[:MAX_TWEET_CHARS]
        except GenerationError as e:
            log.warning("Tweet generation failed for %s: %s", alert.symbol, e)
            return False

        if self.dry_run or self.poster is None:
            log.info("[DRY RUN] Would tweet: %s", text)
            return True

        try:
            posted = await self.poster.post_tweet(text)
        except (RemoteFailure, ValueError) as e:
            log.warning("Tweet post failed for %s: %s", alert.symbol, e)
            return False
        log.info("Tweeted %s %s: %s", alert.action, alert.symbol, posted.get("id", ""))
        return True

    async def notify_successful_trades(self, results: list[ExecutionResult]) -> int:
        """Announce eligible results. Returns how many were announced."""
        announced = 0
        for result in results:
            if not self.is_eligible(result):
                continue
            if await self.post_trade_alert(TradeAlert.from_result(result)):
                self._announced.add(self._key(result))
                announced += 1
        return announced
