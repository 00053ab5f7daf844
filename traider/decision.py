"""Decision engine: turn a token analysis into a BUY / SELL / HOLD call.

The LLM sees the position (if any), the freshest market snapshot, the
market score and a social summary, and must answer with a TradeDecision.
Its answer is then forced to agree with the position: a holder can only
SELL or HOLD, a non-holder can only BUY.
"""

from __future__ import annotations

import json
import logging

from traider.llm_utils import GenerationError, Generator
from traider.models import Recommendation, Token, TokenAnalysis, TradeDecision

log = logging.getLogger("traider.decision")

SOCIAL_SAMPLE_SIZE = 3

SYSTEM_PROMPT = """You are a disciplined memecoin trader.
You weigh market structure, social momentum and position P&L, and you
answer only with the requested JSON object."""

HOLDER_GUIDELINES = """Guidelines for an existing position:
- SELL to take profit when ROI is above +100%.
- SELL to cut losses when ROI is below -50%.
- SELL the entire position if price has fallen more than 90%.
- HOLD when momentum is positive even if ROI is negative.
- Recommend SELL or HOLD only."""

ENTRY_GUIDELINES = """Guidelines for a new entry:
- Look for positive price momentum and rising volume.
- Favour strong, recent social sentiment.
- Check that liquidity and market cap can absorb the trade.
- Recommend BUY if the setup is acceptable."""


def enforce_position_consistency(decision: TradeDecision, has_position: bool) -> TradeDecision:
    """Holder: BUY becomes HOLD. Non-holder: SELL/HOLD becomes BUY."""
    if has_position and decision.recommendation == Recommendation.BUY:
        log.warning("Coercing BUY to HOLD for held token")
        return decision.model_copy(update={"recommendation": Recommendation.HOLD})
    if not has_position and decision.recommendation != Recommendation.BUY:
        log.warning("Coercing %s to BUY for token without a position", decision.recommendation.value)
        return decision.model_copy(update={"recommendation": Recommendation.BUY})
    return decision


def build_prompt(token: Token, analysis: TokenAnalysis) -> str:
    has_position = token.has_position
    lines = [f"Token: {token.symbol} ({token.name}) on {token.chain_id}, address {token.address}"]

    if has_position:
        pos = analysis.position_analysis
        lines += [
            "",
            "You currently HOLD this token.",
            f"- ROI: {pos.roi_native:.2f}%",
            f"- Unrealized P&L: {pos.unrealized_pnl_native:.4f} native",
            f"- Current price: {pos.current_price_native:.8f} native",
            f"- Position size: {token.balance.amount}",
            "",
            HOLDER_GUIDELINES,
        ]
    else:
        lines += ["", "You do NOT hold this token.", "", ENTRY_GUIDELINES]

    top_pair = analysis.market_analysis[0]
    lines += [
        "",
        "Market data (top pair):",
        json.dumps(top_pair.model_dump(mode="json"), indent=2),
    ]
    if analysis.market_score is not None:
        lines.append(f"Market score: {analysis.market_score:.1f}/100")

    social = analysis.social_analysis
    lines += ["", f"Social: {len(social)} recent posts"]
    for item in social[:SOCIAL_SAMPLE_SIZE]:
        lines.append(f"- @{item.author} ({item.age}, {item.engagement_summary()}): {item.clean_text}")

    lines += [
        "",
        "Give a recommendation (BUY, SELL or HOLD), a confidence from 0 to 100,",
        "your reasoning, and lists of risks and opportunities.",
    ]
    return "\n".join(lines)


class DecisionEngine:
    def __init__(self, generator: Generator):
        self.generator = generator

    async def decide(self, token: Token, analysis: TokenAnalysis) -> TradeDecision | None:
        """Recommendation for token, or None when no decision can be made."""
        if not analysis.market_analysis:
            log.warning("No market data for %s, skipping decision", token.symbol)
            return None

        try:
            decision = await self.generator.generate_object(
                build_prompt(token, analysis), TradeDecision, system_prompt=SYSTEM_PROMPT,
            )
        except GenerationError as e:
            log.error("Decision generation failed for %s: %s", token.symbol, e)
            return None
        except Exception as e:
            log.exception("Unexpected decision failure for %s: %s", token.symbol, e)
            return None

        return enforce_position_consistency(decision, token.has_position)
