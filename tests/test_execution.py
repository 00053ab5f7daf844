"""Tests for the execution engine.

Covers:
- Confidence floor -> successful HOLD no-op
- Dry run mirrors the decision without touching venues
- BUY sizing and routing by chain
- SELL of a token with no balance
- Unsupported / unconfigured chains
- Exhausted slippage retries surface as a failed result
"""

from __future__ import annotations

import pytest

from traider.config import ExecutionConfig
from traider.execution import ExecutionEngine, buy_amount
from traider.models import MarketPair, Recommendation, SwapResult, Token, TokenBalance, TradeDecision
from traider.venues.base import SlippageExceeded
from tests.mocks.fake_clock import FakeClock
from tests.mocks.mock_dexscreener import BOAR_MINT, FRESH_PAIR


class RecordingVenue:
    chain = "solana"
    native_symbol = "SOL"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str, float, float]] = []

    async def swap(self, from_token, to_token, amount, slippage_pct):
        self.calls.append((from_token, to_token, amount, slippage_pct))
        if self.fail:
            raise SlippageExceeded("Price moved too much, try increasing slippage")
        return SwapResult(reference="5igSig", from_amount=amount, to_amount=amount * 1000)


def _token(chain: str = "solana", amount: float | None = None) -> Token:
    balance = TokenBalance(amount=amount) if amount is not None else None
    return Token(symbol="BOAR", name="Boar", address=BOAR_MINT, chain_id=chain, balance=balance)


def _decision(rec: Recommendation, confidence: float = 90) -> TradeDecision:
    return TradeDecision(recommendation=rec, confidence=confidence, reasoning="volume spike")


@pytest.fixture
def market():
    return [MarketPair.model_validate(FRESH_PAIR)]


class TestBuyAmount:

    @pytest.mark.parametrize("confidence,expected", [
        (75, 0.001),
        (87.5, 0.003),
        (100, 0.005),
        (60, 0.001),
    ])
    def test_linear_between_bounds(self, confidence, expected):
        assert buy_amount(confidence, ExecutionConfig()) == pytest.approx(expected)


class TestExecute:

    @pytest.mark.asyncio
    async def test_low_confidence_holds(self, market):
        venue = RecordingVenue()
        engine = ExecutionEngine({"solana": venue})

        result = await engine.execute(_token(), _decision(Recommendation.BUY, 60), market)

        assert result.success is True
        assert result.action == Recommendation.HOLD
        assert result.error == "Confidence too low"
        assert venue.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_mirrors_decision(self, market):
        venue = RecordingVenue()
        engine = ExecutionEngine({"solana": venue}, dry_run=True)

        result = await engine.execute(_token(), _decision(Recommendation.BUY), market)

        assert result.success is True
        assert result.action == Recommendation.BUY
        assert result.market_data == market
        assert venue.calls == []

    @pytest.mark.asyncio
    async def test_hold_is_noop(self, market):
        venue = RecordingVenue()
        result = await ExecutionEngine({"solana": venue}).execute(_token(amount=10), _decision(Recommendation.HOLD), market)

        assert result.success is True
        assert result.action == Recommendation.HOLD
        assert venue.calls == []

    @pytest.mark.asyncio
    async def test_buy_spends_native(self, market):
        venue = RecordingVenue()
        engine = ExecutionEngine({"solana": venue})

        result = await engine.execute(_token(), _decision(Recommendation.BUY, 100), market)

        assert result.success is True
        assert result.reference == "5igSig"
        assert result.amount == pytest.approx(0.005)
        assert venue.calls == [("SOL", BOAR_MINT, pytest.approx(0.005), 1.0)]

    @pytest.mark.asyncio
    async def test_sell_whole_balance(self, market):
        venue = RecordingVenue()
        result = await ExecutionEngine({"solana": venue}).execute(_token(amount=1000), _decision(Recommendation.SELL), market)

        assert result.success is True
        assert result.amount == 1000
        assert venue.calls[0][:3] == (BOAR_MINT, "SOL", 1000)

    @pytest.mark.asyncio
    async def test_sell_without_balance(self, market):
        venue = RecordingVenue()
        result = await ExecutionEngine({"solana": venue}).execute(_token(), _decision(Recommendation.SELL), market)

        assert result.success is False
        assert result.error == "No balance"
        assert venue.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_chain(self, market):
        result = await ExecutionEngine({"solana": RecordingVenue()}).execute(
            _token(chain="tron"), _decision(Recommendation.BUY), market,
        )
        assert result.success is False
        assert "Unsupported chain" in result.error

    @pytest.mark.asyncio
    async def test_supported_chain_without_venue(self, market):
        result = await ExecutionEngine({"solana": RecordingVenue()}).execute(
            _token(chain="base"), _decision(Recommendation.BUY), market,
        )
        assert result.success is False
        assert "No venue configured" in result.error

    @pytest.mark.asyncio
    async def test_chain_lookup_is_case_insensitive(self, market):
        venue = RecordingVenue()
        result = await ExecutionEngine({"Solana": venue}).execute(
            _token(chain="SOLANA"), _decision(Recommendation.BUY), market,
        )
        assert result.success is True
        assert len(venue.calls) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries(self, market):
        venue = RecordingVenue(fail=True)
        clock = FakeClock()
        engine = ExecutionEngine({"solana": venue}, ExecutionConfig(max_attempts=3, retry_delay_seconds=2), sleep=clock.sleep)

        result = await engine.execute(_token(), _decision(Recommendation.BUY), market)

        assert result.success is False
        assert result.error.startswith("Swap failed after 3 attempts")
        assert [c[3] for c in venue.calls] == [1.0, 2.0, 4.0]
        assert clock.sleeps == [2, 2]
