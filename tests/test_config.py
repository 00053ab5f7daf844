"""Tests for configuration loading and env overrides."""

from __future__ import annotations

import pytest

from traider.config import ConfigError, TradingConfig, load_trading_config, require_env


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TRAIDER_DRY_RUN", raising=False)
    monkeypatch.delenv("TRAIDER_ANALYSIS_INTERVAL", raising=False)


class TestLoadTradingConfig:

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_trading_config(tmp_path / "nope.yaml")
        assert config == TradingConfig()
        assert config.workflow.analysis_interval_seconds == 360
        assert config.signals.requests_per_minute == 10
        assert config.execution.max_slippage_pct == 30

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "trading.yaml"
        path.write_text(
            "dry_run: true\n"
            "execution:\n"
            "  min_confidence: 80\n"
            "workflow:\n"
            "  trending_limit: 5\n"
        )
        config = load_trading_config(path)

        assert config.dry_run is True
        assert config.execution.min_confidence == 80
        assert config.execution.max_buy_amount == 0.005
        assert config.workflow.trending_limit == 5

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRAIDER_DRY_RUN", "TRUE")
        monkeypatch.setenv("TRAIDER_ANALYSIS_INTERVAL", "90")

        config = load_trading_config(tmp_path / "nope.yaml")

        assert config.dry_run is True
        assert config.workflow.analysis_interval_seconds == 90

    def test_dry_run_env_false(self, tmp_path, monkeypatch):
        path = tmp_path / "trading.yaml"
        path.write_text("dry_run: true\n")
        monkeypatch.setenv("TRAIDER_DRY_RUN", "false")

        assert load_trading_config(path).dry_run is False

    def test_bad_interval(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRAIDER_ANALYSIS_INTERVAL", "six minutes")
        with pytest.raises(ConfigError, match="TRAIDER_ANALYSIS_INTERVAL"):
            load_trading_config(tmp_path / "nope.yaml")

    def test_invalid_yaml_value(self, tmp_path):
        path = tmp_path / "trading.yaml"
        path.write_text("signals:\n  requests_per_minute: 0\n")
        with pytest.raises(ConfigError):
            load_trading_config(path)

    def test_request_weight_above_budget(self, tmp_path):
        path = tmp_path / "trading.yaml"
        path.write_text("signals:\n  weighted_budget_per_minute: 10\n  request_weight: 12\n")
        with pytest.raises(ConfigError, match="request_weight"):
            load_trading_config(path)

    def test_shipped_config_loads(self):
        config = load_trading_config()
        assert config.venues.stake_minimum_sol == 0.01


class TestRequireEnv:

    def test_explicit_value(self):
        assert require_env("TRAIDER_NOT_SET", "given") == "given"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TRAIDER_SOME_KEY", "abc")
        assert require_env("TRAIDER_SOME_KEY") == "abc"

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("TRAIDER_SOME_KEY", raising=False)
        with pytest.raises(ConfigError, match="TRAIDER_SOME_KEY"):
            require_env("TRAIDER_SOME_KEY")
