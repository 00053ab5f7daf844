"""Trading workflow: the periodic discover -> analyze -> decide -> execute -> notify loop.

Each iteration is a sequence of barriers: every token is analyzed before
any decision is requested, every decision is in before anything is
executed. A failure on one token never stops the others; an exception
escaping an iteration is logged and followed by a cooldown.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Sequence

from traider.analysis import TokenAnalyzer
from traider.clients.dexscreener import DexScreenerClient
from traider.clients.moralis import PortfolioClient
from traider.config import TradingConfig
from traider.decision import DecisionEngine
from traider.execution import ExecutionEngine
from traider.models import ExecutionResult, Token, TokenAnalysis, TradeDecision
from traider.notifier import TradeNotifier
from traider.utils.async_batch import batch_gather

log = logging.getLogger("traider.workflow")

DiscoverySource = Callable[[], Awaitable[list[Token]]]


class WorkflowState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


def dedupe_tokens(tokens: Iterable[Token]) -> list[Token]:
    """Drop repeated symbols (case-insensitive). The first occurrence wins."""
    seen: set[str] = set()
    unique = []
    for token in tokens:
        key = token.symbol.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(token)
    return unique


class TradingWorkflow:
    def __init__(
        self,
        market: DexScreenerClient,
        portfolio: PortfolioClient | None,
        analyzer: TokenAnalyzer,
        decision_engine: DecisionEngine,
        execution_engine: ExecutionEngine,
        notifier: TradeNotifier | None = None,
        discovery: Sequence[DiscoverySource] = (),
        config: TradingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.market = market
        self.portfolio = portfolio
        self.analyzer = analyzer
        self.decision_engine = decision_engine
        self.execution_engine = execution_engine
        self.notifier = notifier
        self.discovery = list(discovery)
        self.config = config or TradingConfig()
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self.state = WorkflowState.IDLE
        self.cycle = 0

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    def stop(self) -> None:
        """Request a stop. An in-flight iteration still completes."""
        if self.state == WorkflowState.RUNNING:
            self.state = WorkflowState.STOPPING
        self._stop_event.set()

    async def _wait(self, seconds: float) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def discover(self) -> tuple[list[Token], list[Token]]:
        """(portfolio tokens, candidate tokens) from every source, concurrently."""
        wf = self.config.workflow

        async def _portfolio() -> list[Token]:
            return await self.portfolio.get_tokens() if self.portfolio else []

        sources = [_portfolio(), self.market.get_trending(wf.trending_limit)] + [s() for s in self.discovery]
        results = await asyncio.gather(*sources, return_exceptions=True)

        lists: list[list[Token]] = []
        for outcome in results:
            if isinstance(outcome, BaseException):
                log.warning("Discovery source failed (%s): %s", type(outcome).__name__, outcome)
                lists.append([])
            else:
                lists.append(outcome)

        portfolio = lists[0]
        candidates = [t for found in lists[1:] for t in found]
        return portfolio, candidates

    async def run_iteration(self) -> dict[str, Any] | None:
        """One full pass. Returns None if another pass is already running."""
        if self._lock.locked():
            log.info("Iteration already in progress, skipping")
            return None

        async with self._lock:
            self.cycle += 1
            max_concurrent = self.config.workflow.max_concurrent
            result: dict[str, Any] = {
                "cycle": self.cycle,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "dry_run": self.execution_engine.dry_run,
                "tokens": [],
                "analyzed": [],
                "decisions": [],
                "executions": [],
                "notified": 0,
                "funnel": {},
                "errors": [],
            }

            portfolio, candidates = await self.discover()
            tokens = dedupe_tokens(portfolio + candidates)
            result["tokens"] = [t.symbol for t in tokens]
            log.info("Cycle %d: %d tokens (%d held, %d candidates)", self.cycle, len(tokens), len(portfolio), len(candidates))

            analyses: list[TokenAnalysis | None] = await batch_gather(tokens, self.analyzer.analyze, max_concurrent)
            analyzed = [(t, a) for t, a in zip(tokens, analyses) if a is not None]
            result["analyzed"] = [t.symbol for t, _ in analyzed]
            for token, analysis in zip(tokens, analyses):
                if analysis is None:
                    result["errors"].append(f"Analysis failed for {token.symbol}")

            decisions: list[TradeDecision | None] = await batch_gather(
                analyzed, lambda pair: self.decision_engine.decide(*pair), max_concurrent,
            )
            decided = [(t, a, d) for (t, a), d in zip(analyzed, decisions) if d is not None]
            for token, _, decision in decided:
                log.info(
                    "%s: %s (confidence %.0f) %s",
                    token.symbol, decision.recommendation.value, decision.confidence, decision.reasoning,
                )
                result["decisions"].append({
                    "symbol": token.symbol,
                    "recommendation": decision.recommendation.value,
                    "confidence": decision.confidence,
                })

            outcomes = await batch_gather(
                decided,
                lambda item: self.execution_engine.execute(item[0], item[2], item[1].market_analysis),
                max_concurrent,
            )
            executions: list[ExecutionResult] = [e for e in outcomes if e is not None]
            for execution in executions:
                result["executions"].append({
                    "symbol": execution.token.symbol if execution.token else "",
                    "action": execution.action.value,
                    "success": execution.success,
                    "amount": execution.amount,
                    "reference": execution.reference,
                    "error": execution.error,
                })
                if not execution.success:
                    result["errors"].append(f"Execution failed for {execution.token.symbol}: {execution.error}")

            if self.notifier is not None:
                try:
                    result["notified"] = await self.notifier.notify_successful_trades(executions)
                except Exception as e:
                    log.error("Notification stage failed: %s", e)
                    result["errors"].append(f"Notification failed: {e}")

            result["funnel"] = {
                "portfolio": len(portfolio),
                "candidates": len(candidates),
                "unique": len(tokens),
                "analyzed": len(analyzed),
                "decided": len(decided),
                "executed": sum(1 for e in executions if e.success),
                "notified": result["notified"],
            }
            return result

    async def run_forever(self) -> None:
        """Iterate until stop() is called."""
        wf = self.config.workflow
        self.state = WorkflowState.RUNNING
        log.info("Trading workflow started (interval %.0fs)", wf.analysis_interval_seconds)
        try:
            while not self._stop_event.is_set():
                try:
                    report = await self.run_iteration()
                    if report is not None:
                        log.info("Cycle %d funnel: %s", report["cycle"], report["funnel"])
                except Exception as e:
                    log.exception("Iteration failed: %s", e)
                    await self._wait(wf.error_cooldown_seconds)
                    continue
                await self._wait(wf.analysis_interval_seconds)
        finally:
            self.state = WorkflowState.IDLE
            log.info("Trading workflow stopped")
