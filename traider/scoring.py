"""
Token Scoring
Social engagement score and age-adjusted market score (0-100).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from traider.models import MarketPair, Period, SocialItem


# Engagement weights: a quote is worth ten likes
LIKE_WEIGHT = 1
REPLY_WEIGHT = 3
REPOST_WEIGHT = 5
QUOTE_WEIGHT = 10
SMART_ENGAGEMENT_WEIGHT = 5

# Pairs younger than this are scored with the "young" curves
YOUNG_PAIR_HOURS = 6


def social_score(item: SocialItem) -> float:
    """Weighted engagement. Monotone non-decreasing in every counter."""
    return (
        item.likes * LIKE_WEIGHT
        + item.replies * REPLY_WEIGHT
        + item.reposts * REPOST_WEIGHT
        + item.quotes * QUOTE_WEIGHT
        + item.smart_engagement * SMART_ENGAGEMENT_WEIGHT
    )


@dataclass(frozen=True)
class AgeThresholds:
    """Values at which a metric earns its full weight."""
    liquidity: float
    volume: float
    market_cap: float
    txns: int


@dataclass(frozen=True)
class AgeWeights:
    liquidity: float
    volume: float
    transactions: float
    price_stability: float
    market_cap: float
    fdv_ratio: float


# (max age in hours, thresholds, age bonus) - last bucket is open ended
AGE_BUCKETS = [
    (0.5, AgeThresholds(10_000, 5_000, 25_000, 10), 15),
    (1, AgeThresholds(20_000, 10_000, 50_000, 20), 10),
    (6, AgeThresholds(50_000, 25_000, 100_000, 50), 7),
    (24, AgeThresholds(100_000, 50_000, 200_000, 100), 5),
    (float("inf"), AgeThresholds(200_000, 100_000, 500_000, 200), 0),
]


def age_bucket(age_hours: float) -> tuple[AgeThresholds, int]:
    """Thresholds and bonus for a pair of the given age."""
    for max_age, thresholds, bonus in AGE_BUCKETS:
        if age_hours <= max_age:
            return thresholds, bonus
    return AGE_BUCKETS[-1][1], AGE_BUCKETS[-1][2]


def age_weights(age_hours: float) -> AgeWeights:
    if age_hours <= 0.5:
        return AgeWeights(0.4, 0.35, 0.2, 0.05, 0.05, 0.0)
    if age_hours <= YOUNG_PAIR_HOURS:
        return AgeWeights(0.35, 0.3, 0.2, 0.1, 0.05, 0.0)
    return AgeWeights(0.3, 0.25, 0.2, 0.15, 0.05, 0.05)


def _buy_ratio_score(ratio: float, young: bool) -> float:
    if young:
        if ratio >= 0.5:
            return 1.0
        if ratio >= 0.4:
            return 0.8
        if ratio >= 0.3:
            return 0.6
        return 0.3
    if ratio >= 0.6:
        return 1.0
    if ratio >= 0.45:
        return 0.8
    if ratio >= 0.3:
        return 0.5
    return 0.2


def _stability_score(abs_change: float, young: bool) -> float:
    if young:
        if abs_change <= 40:
            return 1.0
        if abs_change <= 60:
            return 0.8
        if abs_change <= 80:
            return 0.5
        return 0.2
    if abs_change <= 20:
        return 1.0
    if abs_change <= 40:
        return 0.8
    if abs_change <= 60:
        return 0.5
    if abs_change <= 80:
        return 0.3
    return 0.1


def _fdv_ratio_score(market_cap: float, fdv: float) -> float:
    ratio = market_cap / fdv if market_cap and fdv else 0.0
    if ratio >= 0.6:
        return 1.0
    if ratio >= 0.4:
        return 0.8
    if ratio >= 0.2:
        return 0.5
    return 0.2


def score_breakdown(pair: MarketPair, now: Optional[datetime] = None) -> Dict[str, float]:
    """Per-component contributions (each already multiplied by its weight).

    Missing statistics count as zero. 'age_bonus' is in points, the rest
    are fractions of 1.
    """
    age = pair.age_hours(now)
    young = age <= YOUNG_PAIR_HOURS
    thresholds, bonus = age_bucket(age)
    weights = age_weights(age)

    liquidity = pair.liquidity.usd or 0.0
    volume = pair.volume.get(Period.H24.value, 0.0)
    market_cap = pair.market_cap or 0.0
    fdv = pair.fdv or 0.0
    day_txns = pair.txns.get(Period.H24.value)
    buys = day_txns.buys if day_txns else 0
    total_txns = day_txns.total if day_txns else 0
    abs_change = abs(pair.price_change.get(Period.H24.value, 0.0))

    txn_component = 0.0
    if total_txns > 0:
        txn_component = (
            _buy_ratio_score(buys / total_txns, young)
            * min(total_txns / thresholds.txns, 1.0)
            * weights.transactions
        )

    return {
        "liquidity": min(liquidity / thresholds.liquidity, 1.0) * weights.liquidity,
        "volume": min(volume / thresholds.volume, 1.0) * weights.volume,
        "transactions": txn_component,
        "price_stability": _stability_score(abs_change, young) * weights.price_stability,
        "market_cap": min(market_cap / thresholds.market_cap, 1.0) * weights.market_cap,
        "fdv_ratio": 0.0 if young else _fdv_ratio_score(market_cap, fdv) * weights.fdv_ratio,
        "age_bonus": float(bonus),
    }


def market_score(pair: MarketPair, now: Optional[datetime] = None) -> float:
    """Age-adjusted market quality score, clamped to [0, 100]."""
    parts = score_breakdown(pair, now)
    bonus = parts.pop("age_bonus")
    total = sum(parts.values()) * 100 + bonus
    return max(0.0, min(100.0, total))
