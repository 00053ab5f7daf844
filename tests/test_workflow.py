"""Tests for the trading workflow.

Covers:
- Symbol de-duplication across portfolio and candidates
- Stage barriers: analyze -> decide -> execute -> notify
- One failing token never stops the others
- Failing discovery sources degrade to empty
- Re-entrancy guard
- run_forever interval, cooldown and stop (including a stop requested before start)
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from traider.config import TradingConfig, WorkflowConfig
from traider.models import (
    ExecutionResult,
    MarketPair,
    PositionAnalysis,
    Recommendation,
    Token,
    TokenAnalysis,
    TokenBalance,
    TradeDecision,
)
from traider.workflow import TradingWorkflow, WorkflowState, dedupe_tokens
from tests.mocks.fake_clock import FakeClock
from tests.mocks.mock_dexscreener import FRESH_PAIR


def _token(symbol: str, held: bool = False) -> Token:
    balance = TokenBalance(amount=100) if held else None
    return Token(symbol=symbol, name=symbol, address=f"{symbol}-addr", chain_id="solana", balance=balance)


def _analysis() -> TokenAnalysis:
    return TokenAnalysis(
        market_analysis=[MarketPair.model_validate(FRESH_PAIR)],
        position_analysis=PositionAnalysis(),
        market_score=80,
    )


def _decision(rec: Recommendation = Recommendation.BUY) -> TradeDecision:
    return TradeDecision(recommendation=rec, confidence=90, reasoning="momentum")


def _executed(token: Token, decision: TradeDecision, market_data=None) -> ExecutionResult:
    return ExecutionResult(
        success=True, action=decision.recommendation, token=token, decision=decision, market_data=market_data or [],
    )


def _workflow(portfolio=(), trending=(), discovery=(), sleep=None, config=None) -> TradingWorkflow:
    market = MagicMock()
    market.get_trending = AsyncMock(return_value=list(trending))
    portfolio_client = MagicMock()
    portfolio_client.get_tokens = AsyncMock(return_value=list(portfolio))

    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(side_effect=lambda token: _analysis())
    decision_engine = MagicMock()
    decision_engine.decide = AsyncMock(side_effect=lambda token, analysis: _decision())
    execution_engine = MagicMock()
    execution_engine.dry_run = False
    execution_engine.execute = AsyncMock(side_effect=_executed)
    notifier = MagicMock()
    notifier.notify_successful_trades = AsyncMock(side_effect=lambda results: len(results))

    return TradingWorkflow(
        market=market,
        portfolio=portfolio_client,
        analyzer=analyzer,
        decision_engine=decision_engine,
        execution_engine=execution_engine,
        notifier=notifier,
        discovery=discovery,
        config=config,
        sleep=sleep,
    )


class TestDedupe:

    def test_first_occurrence_wins(self):
        held = _token("BOAR", held=True)
        tokens = dedupe_tokens([held, _token("boar"), _token("PUP")])
        assert [t.symbol for t in tokens] == ["BOAR", "PUP"]
        assert tokens[0] is held

    def test_empty(self):
        assert dedupe_tokens([]) == []


class TestRunIteration:

    @pytest.mark.asyncio
    async def test_full_pass(self):
        wf = _workflow(portfolio=[_token("BOAR", held=True)], trending=[_token("boar"), _token("PUP")])

        report = await wf.run_iteration()

        assert report["cycle"] == 1
        assert report["tokens"] == ["BOAR", "PUP"]
        assert report["analyzed"] == ["BOAR", "PUP"]
        assert [d["symbol"] for d in report["decisions"]] == ["BOAR", "PUP"]
        assert len(report["executions"]) == 2
        assert report["notified"] == 2
        assert report["errors"] == []
        assert report["funnel"] == {
            "portfolio": 1, "candidates": 2, "unique": 2, "analyzed": 2, "decided": 2, "executed": 2, "notified": 2,
        }
        # the held token keeps its balance through the pipeline
        executed_token = wf.execution_engine.execute.call_args_list[0].args[0]
        assert executed_token.has_position is True

    @pytest.mark.asyncio
    async def test_stages_are_barriers(self):
        events: list[str] = []
        wf = _workflow(trending=[_token("A"), _token("B")])

        async def analyze(token):
            await asyncio.sleep(0)
            events.append(f"analyze:{token.symbol}")
            return _analysis()

        async def decide(token, analysis):
            events.append(f"decide:{token.symbol}")
            return _decision()

        async def execute(token, decision, market_data):
            events.append(f"execute:{token.symbol}")
            return _executed(token, decision, market_data)

        wf.analyzer.analyze.side_effect = analyze
        wf.decision_engine.decide.side_effect = decide
        wf.execution_engine.execute.side_effect = execute

        await wf.run_iteration()

        stages = [e.split(":")[0] for e in events]
        assert stages == ["analyze", "analyze", "decide", "decide", "execute", "execute"]

    @pytest.mark.asyncio
    async def test_one_failing_token_does_not_stop_others(self):
        wf = _workflow(trending=[_token("BAD"), _token("GOOD")])

        async def analyze(token):
            if token.symbol == "BAD":
                raise RuntimeError("pairs endpoint exploded")
            return _analysis()

        wf.analyzer.analyze.side_effect = analyze

        report = await wf.run_iteration()

        assert report["analyzed"] == ["GOOD"]
        assert [d["symbol"] for d in report["decisions"]] == ["GOOD"]
        assert "Analysis failed for BAD" in report["errors"]

    @pytest.mark.asyncio
    async def test_no_decision_means_no_execution(self):
        wf = _workflow(trending=[_token("A")])
        wf.decision_engine.decide.side_effect = lambda token, analysis: None

        report = await wf.run_iteration()

        assert report["decisions"] == []
        wf.execution_engine.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_execution_recorded(self):
        wf = _workflow(trending=[_token("A")])
        wf.execution_engine.execute.side_effect = lambda token, decision, market_data: ExecutionResult(
            success=False, action=decision.recommendation, token=token, decision=decision, error="No balance",
        )

        report = await wf.run_iteration()

        assert report["executions"][0]["success"] is False
        assert report["funnel"]["executed"] == 0
        assert "Execution failed for A: No balance" in report["errors"]

    @pytest.mark.asyncio
    async def test_failing_discovery_source_degrades(self):
        async def broken():
            raise RuntimeError("feed down")

        async def extra():
            return [_token("EXTRA")]

        wf = _workflow(trending=[_token("A")], discovery=[broken, extra])

        report = await wf.run_iteration()

        assert report["tokens"] == ["A", "EXTRA"]

    @pytest.mark.asyncio
    async def test_notifier_failure_recorded(self):
        wf = _workflow(trending=[_token("A")])
        wf.notifier.notify_successful_trades.side_effect = RuntimeError("x down")

        report = await wf.run_iteration()

        assert report["notified"] == 0
        assert any("Notification failed" in e for e in report["errors"])

    @pytest.mark.asyncio
    async def test_reentrant_call_skipped(self):
        wf = _workflow(trending=[_token("A")])
        gate = asyncio.Event()

        async def slow_analyze(token):
            await gate.wait()
            return _analysis()

        wf.analyzer.analyze.side_effect = slow_analyze

        first = asyncio.create_task(wf.run_iteration())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert wf.is_processing is True
        assert await wf.run_iteration() is None

        gate.set()
        report = await first
        assert report["cycle"] == 1
        assert wf.is_processing is False


class TestRunForever:

    @pytest.mark.asyncio
    async def test_waits_interval_and_stops(self):
        clock = FakeClock()
        config = TradingConfig(workflow=WorkflowConfig(analysis_interval_seconds=360))
        wf = _workflow(trending=[_token("A")], sleep=clock.sleep, config=config)

        async def sleep_then_stop(seconds):
            await clock.sleep(seconds)
            if len(clock.sleeps) == 2:
                wf.stop()

        wf._sleep = sleep_then_stop

        await wf.run_forever()

        assert wf.cycle == 2
        assert clock.sleeps == [360, 360]
        assert wf.state == WorkflowState.IDLE

    @pytest.mark.asyncio
    async def test_iteration_error_triggers_cooldown(self):
        clock = FakeClock()
        config = TradingConfig(workflow=WorkflowConfig(analysis_interval_seconds=360, error_cooldown_seconds=30))
        wf = _workflow(sleep=clock.sleep, config=config)
        wf.run_iteration = AsyncMock(side_effect=[RuntimeError("boom"), {"cycle": 1, "funnel": {}}])

        async def sleep_then_stop(seconds):
            await clock.sleep(seconds)
            if len(clock.sleeps) == 2:
                wf.stop()

        wf._sleep = sleep_then_stop

        await wf.run_forever()

        assert clock.sleeps == [30, 360]

    @pytest.mark.asyncio
    async def test_stop_interrupts_real_wait(self):
        config = TradingConfig(workflow=WorkflowConfig(analysis_interval_seconds=3600))
        wf = _workflow(config=config)

        task = asyncio.create_task(wf.run_forever())
        for _ in range(20):
            await asyncio.sleep(0)
        assert wf.state == WorkflowState.RUNNING
        wf.stop()
        await asyncio.wait_for(task, timeout=1)

        assert wf.state == WorkflowState.IDLE

    @pytest.mark.asyncio
    async def test_stop_before_start_runs_nothing(self):
        clock = FakeClock()
        wf = _workflow(trending=[_token("A")], sleep=clock.sleep)
        wf.run_iteration = AsyncMock()

        wf.stop()
        await asyncio.wait_for(wf.run_forever(), timeout=1)

        wf.run_iteration.assert_not_awaited()
        assert wf.cycle == 0
        assert clock.sleeps == []
        assert wf.state == WorkflowState.IDLE
