"""Configuration loader for traider.

Tunables come from config/trading.yaml (optional, defaults apply when the
file is missing). Credentials are never stored in YAML: each client reads
its own from the environment at construction time.

Environment overrides:
    TRAIDER_DRY_RUN: "true" to simulate every trade
    TRAIDER_ANALYSIS_INTERVAL: seconds between workflow iterations
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

WORKSPACE = Path(__file__).resolve().parent.parent
CONFIG_DIR = WORKSPACE / "config"
TRADING_CONFIG_PATH = CONFIG_DIR / "trading.yaml"


class ConfigError(Exception):
    """Missing or invalid configuration (usually a credential)."""


class SignalConfig(BaseModel):
    """Social signal provider limits."""

    base_url: str = "https://api.cookie.fun/v1/hackathon"
    requests_per_minute: int = Field(default=10, gt=0)
    cache_ttl_seconds: float = 20 * 60
    lookback_days: int = 3
    max_batch_size: int = Field(default=3, gt=0)
    weighted_budget_per_minute: int = Field(default=60, gt=0)
    request_weight: int = Field(default=12, gt=0)
    batch_delay_seconds: float | None = None
    timeout: float = 15.0

    @model_validator(mode="after")
    def _budget_covers_one_request(self) -> SignalConfig:
        if self.request_weight > self.weighted_budget_per_minute:
            raise ValueError(
                f"request_weight ({self.request_weight}) exceeds weighted_budget_per_minute "
                f"({self.weighted_budget_per_minute})"
            )
        return self


class ExecutionConfig(BaseModel):
    """Confidence gating, sizing and slippage escalation."""

    min_confidence: float = 75
    max_confidence: float = 100
    min_buy_amount: float = 0.001
    max_buy_amount: float = 0.005
    initial_slippage_pct: float = 1.0
    max_slippage_pct: float = 30.0
    max_attempts: int = Field(default=5, gt=0)
    retry_delay_seconds: float = 5.0


class VenueConfig(BaseModel):
    """Chain venue endpoints (secrets come from env)."""

    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_fallback_rpc_url: str = "https://solana-rpc.publicnode.com"
    jupiter_url: str = "https://quote-api.jup.ag/v6"
    stake_minimum_sol: float = 0.01
    base_rpc_url: str = "https://mainnet.base.org"
    base_router_address: str = "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24"
    base_weth_address: str = "0x4200000000000000000000000000000000000006"


class WorkflowConfig(BaseModel):
    """Iteration cadence and fan-out limits."""

    analysis_interval_seconds: float = 6 * 60
    error_cooldown_seconds: float = 30
    trending_limit: int = 10
    top_wallet_limit: int = 3
    social_results: int = 10
    max_concurrent: int = 5
    experienced_buyers_chain: str = "base"


class TradingConfig(BaseModel):
    """Full runtime configuration."""

    dry_run: bool = False
    signals: SignalConfig = Field(default_factory=SignalConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    venues: VenueConfig = Field(default_factory=VenueConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)


def load_trading_yaml(path: Path | None = None) -> dict[str, Any]:
    """Load config/trading.yaml."""
    path = path or TRADING_CONFIG_PATH
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


def load_trading_config(path: Path | None = None) -> TradingConfig:
    """Build TradingConfig from YAML plus environment overrides."""
    data = load_trading_yaml(path)
    try:
        config = TradingConfig(**data)
    except ValueError as e:
        raise ConfigError(f"Invalid trading config: {e}") from e

    dry_run = os.environ.get("TRAIDER_DRY_RUN")
    if dry_run is not None:
        config.dry_run = dry_run.strip().lower() == "true"

    interval = os.environ.get("TRAIDER_ANALYSIS_INTERVAL")
    if interval:
        try:
            config.workflow.analysis_interval_seconds = float(interval)
        except ValueError as e:
            raise ConfigError(f"TRAIDER_ANALYSIS_INTERVAL must be a number, got {interval!r}") from e

    return config


def require_env(name: str, value: str | None = None) -> str:
    """Return value or the named environment variable, else raise ConfigError."""
    resolved = value or os.environ.get(name, "")
    if not resolved:
        raise ConfigError(f"{name} not set in environment")
    return resolved
