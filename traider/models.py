"""Shared data model for traider.

Tokens, social items, market pairs, decisions and execution results all
flow between the clients, the analyzer and the workflow as these pydantic
models. Provider payloads are parsed here (camelCase aliases) so the rest
of the code only sees snake_case fields.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Period(str, Enum):
    """Reporting windows used by DEX pair statistics."""

    M5 = "m5"
    H1 = "h1"
    H6 = "h6"
    H24 = "h24"

    @property
    def seconds(self) -> int:
        return _PERIOD_SECONDS[self]


_PERIOD_SECONDS = {
    Period.M5: 5 * 60,
    Period.H1: 60 * 60,
    Period.H6: 6 * 60 * 60,
    Period.H24: 24 * 60 * 60,
}

_PERIOD_KEYS = {p.value for p in Period}


class TokenBalance(BaseModel):
    """Held amount of a token, plus average native cost per unit."""

    amount: float
    usd_value: float = 0.0
    cost_basis_native: float = 0.0


class Token(BaseModel):
    """A tradeable token. Identity is the (case-insensitive) symbol."""

    symbol: str
    name: str = ""
    address: str
    chain_id: str
    balance: TokenBalance | None = None

    @property
    def has_position(self) -> bool:
        return self.balance is not None and self.balance.amount > 0


class SocialItem(BaseModel):
    """A social post mentioning a token, enriched for prompting."""

    author: str = ""
    created_at: datetime
    text: str = ""
    likes: int = 0
    replies: int = 0
    reposts: int = 0
    quotes: int = 0
    impressions: int = 0
    engagements: int = 0
    smart_engagement: int = 0
    matching_score: float = 0.0
    is_reply: bool = False
    is_quote: bool = False
    score: float = 0.0
    age: str = ""
    clean_text: str = ""

    def engagement_summary(self) -> str:
        return (
            f"{self.likes} likes, {self.reposts} reposts, "
            f"{self.replies} replies, {self.smart_engagement} smart engagements"
        )


def relative_age(created_at: datetime, now: datetime) -> str:
    """Human relative age: 'just now', 'Nm ago', 'Nh ago', 'Nd ago'."""
    seconds = (now - created_at).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "just now"


class TxnStats(BaseModel):
    buys: int = 0
    sells: int = 0

    @property
    def total(self) -> int:
        return self.buys + self.sells


class Liquidity(BaseModel):
    usd: float | None = None
    base: float | None = None
    quote: float | None = None


class PairToken(BaseModel):
    address: str = ""
    name: str = ""
    symbol: str = ""


def _keep_known_periods(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: v for k, v in value.items() if k in _PERIOD_KEYS and v is not None}
    return value or {}


class MarketPair(BaseModel):
    """One DEX trading pair for a token (DexScreener pair schema).

    Per-period maps only hold the periods that were actually measured.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chain_id: str = Field(default="", alias="chainId")
    dex_id: str = Field(default="", alias="dexId")
    url: str = ""
    pair_address: str = Field(default="", alias="pairAddress")
    base_token: PairToken = Field(default_factory=PairToken, alias="baseToken")
    quote_token: PairToken = Field(default_factory=PairToken, alias="quoteToken")
    price_native: float = Field(default=0.0, alias="priceNative")
    price_usd: float = Field(default=0.0, alias="priceUsd")
    txns: dict[str, TxnStats] = Field(default_factory=dict)
    volume: dict[str, float] = Field(default_factory=dict)
    price_change: dict[str, float] = Field(default_factory=dict, alias="priceChange")
    liquidity: Liquidity = Field(default_factory=Liquidity)
    fdv: float | None = None
    market_cap: float | None = Field(default=None, alias="marketCap")
    pair_created_at: datetime | None = Field(default=None, alias="pairCreatedAt")

    @field_validator("price_native", "price_usd", mode="before")
    @classmethod
    def _parse_price(cls, v: Any) -> Any:
        # Prices arrive as decimal strings
        return 0.0 if v in (None, "") else v

    @field_validator("txns", "volume", "price_change", mode="before")
    @classmethod
    def _parse_periods(cls, v: Any) -> Any:
        return _keep_known_periods(v)

    @field_validator("liquidity", mode="before")
    @classmethod
    def _parse_liquidity(cls, v: Any) -> Any:
        return v or {}

    @field_validator("pair_created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v: Any) -> Any:
        # Epoch milliseconds
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        return v

    def age_hours(self, now: datetime | None = None) -> float:
        """Pair age in hours (0 when the creation time is unknown)."""
        if self.pair_created_at is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return max((now - self.pair_created_at).total_seconds() / 3600, 0.0)


class PositionAnalysis(BaseModel):
    current_price_native: float = 0.0
    current_price_usd: float = 0.0
    roi_native: float = 0.0
    unrealized_pnl_native: float = 0.0
    has_position: bool = False


class TokenAnalysis(BaseModel):
    """Aggregated market, social and position context for one token."""

    market_analysis: list[MarketPair] = Field(default_factory=list)
    social_analysis: list[SocialItem] = Field(default_factory=list)
    position_analysis: PositionAnalysis = Field(default_factory=PositionAnalysis)
    market_score: float | None = None


class Recommendation(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TradeDecision(BaseModel):
    """Structured LLM recommendation."""

    recommendation: Recommendation
    confidence: float = Field(ge=0, le=100)
    reasoning: str
    risks: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)


class SwapResult(BaseModel):
    reference: str
    from_amount: float
    to_amount: float


class StakeResult(BaseModel):
    reference: str
    amount: float
    received_amount: float


class ExecutionResult(BaseModel):
    """Outcome of acting (or declining to act) on one decision."""

    success: bool
    action: Recommendation
    error: str | None = None
    amount: float | None = None
    reference: str | None = None
    token: Token | None = None
    decision: TradeDecision | None = None
    market_data: list[MarketPair] = Field(default_factory=list)


class SwapLeg(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = ""
    amount: float = 0.0
    symbol: str = ""


class SwapTransaction(BaseModel):
    """One entry of a wallet's swap history (Moralis swaps schema)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_hash: str = Field(default="", alias="transactionHash")
    transaction_type: str = Field(default="", alias="transactionType")
    bought: SwapLeg = Field(default_factory=SwapLeg)
    sold: SwapLeg = Field(default_factory=SwapLeg)

    @field_validator("bought", "sold", mode="before")
    @classmethod
    def _parse_leg(cls, v: Any) -> Any:
        return v or {}


class Holdings(BaseModel):
    native_balance: float = 0.0
    tokens: list[Token] = Field(default_factory=list)
