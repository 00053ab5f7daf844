#!/usr/bin/env python3
"""
Trader Runner - build every collaborator from config/env and run the workflow.

Usage:
    python3 -m traider.runner              # loop until interrupted
    python3 -m traider.runner --once       # single iteration, JSON result on stdout
    python3 -m traider.runner --dry-run --interval 60 --verbose
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

from traider.analysis import TokenAnalyzer
from traider.clients.cookie import SignalClient
from traider.clients.dexscreener import DexScreenerClient
from traider.clients.moralis import MoralisClient, PortfolioClient
from traider.clients.topwallets import TopWalletsClient
from traider.clients.x_api import XClient
from traider.config import ConfigError, TradingConfig, load_trading_config
from traider.decision import DecisionEngine
from traider.execution import ExecutionEngine
from traider.llm_utils import GrokGenerator
from traider.notifier import TradeNotifier
from traider.venues.base import VenueAdapter
from traider.venues.evm import BaseVenue
from traider.venues.solana import SolanaVenue
from traider.workflow import TradingWorkflow

log = logging.getLogger("traider.runner")


def _optional(label: str, factory):
    """Build an optional collaborator; None (with a warning) if unconfigured."""
    try:
        return factory()
    except ConfigError as e:
        log.warning("%s disabled: %s", label, e)
        return None


def build_venues(config: TradingConfig) -> dict[str, VenueAdapter]:
    venues: dict[str, VenueAdapter] = {}
    solana = _optional("Solana venue", lambda: SolanaVenue(config.venues))
    if solana:
        venues["solana"] = solana
    base = _optional("Base venue", lambda: BaseVenue(config.venues))
    if base:
        venues["base"] = base
    return venues


def build_workflow(config: TradingConfig) -> tuple[TradingWorkflow, list[Any]]:
    """Wire the workflow. Returns it with every client that needs closing."""
    generator = GrokGenerator()
    market = DexScreenerClient()
    signals = SignalClient(config=config.signals)
    portfolio = _optional("Portfolio", PortfolioClient)
    top_wallets = _optional("Top wallets discovery", TopWalletsClient)
    moralis = _optional("Moralis discovery", MoralisClient)
    poster = None if config.dry_run else _optional("X posting", XClient)
    venues = build_venues(config)

    discovery = []
    if top_wallets:
        discovery.append(lambda: top_wallets.get_top_wallet_tokens(config.workflow.top_wallet_limit))
    if moralis:
        discovery.append(lambda: moralis.get_experienced_buyer_tokens(config.workflow.experienced_buyers_chain))

    workflow = TradingWorkflow(
        market=market,
        portfolio=portfolio,
        analyzer=TokenAnalyzer(market, signals, max_social_results=config.workflow.social_results),
        decision_engine=DecisionEngine(generator),
        execution_engine=ExecutionEngine(venues, config.execution, dry_run=config.dry_run),
        notifier=TradeNotifier(generator, poster=poster, dry_run=config.dry_run),
        discovery=discovery,
        config=config,
    )
    closeables = [c for c in (market, signals, portfolio, top_wallets, moralis, poster) if c is not None]
    return workflow, closeables + list(venues.values())


async def run(args: argparse.Namespace) -> int:
    config = load_trading_config()
    if args.dry_run:
        config.dry_run = True
    if args.interval:
        config.workflow.analysis_interval_seconds = args.interval

    workflow, closeables = build_workflow(config)
    try:
        if args.once:
            result = await workflow.run_iteration()
            print(json.dumps(result, indent=2, default=str))
            return 0 if result and not result["errors"] else 1
        await workflow.run_forever()
        return 0
    finally:
        workflow.stop()
        for client in closeables:
            await client.close()


def main() -> None:
    load_dotenv(override=True)
    parser = argparse.ArgumentParser(description="traider - autonomous memecoin trading loop")
    parser.add_argument("--once", action="store_true", help="Run a single iteration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Simulate trades (overrides TRAIDER_DRY_RUN)")
    parser.add_argument("--interval", type=float, default=0, help="Seconds between iterations")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        sys.exit(asyncio.run(run(args)))
    except ConfigError as e:
        log.error("Configuration error: %s", e)
        sys.exit(2)
    except KeyboardInterrupt:
        log.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
