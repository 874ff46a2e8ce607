"""Tests for the configuration system."""

from __future__ import annotations

import logging
import os

import pytest
import yaml

from custodia.config.defaults import (
    ALLOCATION_RULES,
    ANALYTICS,
    DRIFT_SEVERITY,
    FX_RATES,
    VOLATILITY_TIERS,
)
from custodia.config.loader import _expand_env_vars, load_config
from custodia.config.schema import CustodiaConfig, FXConfig


class TestDefaults:
    """Verify the built-in defaults."""

    def test_allocation_rules(self):
        assert ALLOCATION_RULES["max_total_pct"] == 100.0
        assert ALLOCATION_RULES["warning_threshold_pct"] < ALLOCATION_RULES["max_total_pct"]

    def test_usd_rate_is_one(self):
        assert FX_RATES["USD"] == 1.0

    def test_tiers_ordered(self):
        assert VOLATILITY_TIERS["Low"] < VOLATILITY_TIERS["Medium"]
        assert DRIFT_SEVERITY["Low"] < DRIFT_SEVERITY["Medium"]

    def test_analytics_windows(self):
        assert ANALYTICS["trading_days"] == 252
        assert ANALYTICS["risk_lookback_days"] == 30
        assert ANALYTICS["history_default_days"] == 90


class TestConfigLoading:
    """Test config file loading and validation."""

    def test_load_defaults_no_file(self):
        config = load_config("/nonexistent/path.yaml")
        assert isinstance(config, CustodiaConfig)
        assert config.version == 1
        assert config.allocation.warning_threshold_pct == 90.0

    def test_load_from_yaml(self, tmp_path):
        yaml_content = {
            "version": 1,
            "allocation": {"warning_threshold_pct": 80},
            "fx": {"rates": {"eur": 1.1}},
            "analytics": {"risk_free_rate": 0.05},
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(yaml_content, f)

        config = load_config(str(config_file))
        assert config.allocation.warning_threshold_pct == 80
        assert config.fx.rates["EUR"] == 1.1
        assert config.analytics.risk_free_rate == 0.05

    def test_empty_sections_use_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("version: 1\nallocation:\nfx:\n")
        config = load_config(str(config_file))
        assert config.allocation.max_total_pct == 100.0
        assert config.fx.rates["BRL"] == 0.20

    def test_env_var_expansion(self):
        os.environ["TEST_CUSTODIA_DB"] = "/data/custodia.db"
        try:
            result = _expand_env_vars({"database": {"path": "${TEST_CUSTODIA_DB}"}})
            assert result == {"database": {"path": "/data/custodia.db"}}
        finally:
            del os.environ["TEST_CUSTODIA_DB"]

    def test_env_var_missing_returns_empty(self, caplog):
        with caplog.at_level(logging.WARNING, logger="custodia.config.loader"):
            assert _expand_env_vars({"fx": {"note": "${NONEXISTENT_VAR_12345}"}}) == {"fx": {"note": ""}}
        assert "fx.note references unset environment variable NONEXISTENT_VAR_12345" in caplog.text

    def test_env_var_fallback(self, monkeypatch):
        monkeypatch.delenv("CUSTODIA_TEST_DIR", raising=False)
        assert _expand_env_vars("${CUSTODIA_TEST_DIR:-/var/lib}/book.db") == "/var/lib/book.db"
        monkeypatch.setenv("CUSTODIA_TEST_DIR", "/mnt/vault")
        assert _expand_env_vars("${CUSTODIA_TEST_DIR:-/var/lib}/book.db") == "/mnt/vault/book.db"

    def test_env_var_in_loaded_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CUSTODIA_TEST_RF", "0.05")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("analytics:\n  risk_free_rate: ${CUSTODIA_TEST_RF}\n")
        assert load_config(str(config_file)).analytics.risk_free_rate == 0.05

    def test_non_mapping_document_rejected(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="must hold a mapping"):
            load_config(str(config_file))

    def test_unknown_section_warned(self, tmp_path, caplog):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("allocations:\n  max_total_pct: 50\n")
        with caplog.at_level(logging.WARNING, logger="custodia.config.loader"):
            config = load_config(str(config_file))
        assert "unknown config section(s)" in caplog.text
        assert "allocations" in caplog.text
        assert config.allocation.max_total_pct == 100.0


class TestConfigSchema:
    """Test Pydantic schema validation."""

    def test_warning_above_max_rejected(self):
        with pytest.raises(ValueError):
            CustodiaConfig(allocation={"warning_threshold_pct": 120})

    def test_warning_zero_rejected(self):
        with pytest.raises(ValueError):
            CustodiaConfig(allocation={"warning_threshold_pct": 0})

    def test_negative_fx_rate_rejected(self):
        with pytest.raises(ValueError):
            FXConfig(rates={"BRL": -0.2})

    def test_usd_rate_forced_to_one(self):
        fx = FXConfig(rates={"USD": 3.0, "brl": 0.25})
        assert fx.rates["USD"] == 1.0
        assert fx.rate_for("brl") == 0.25

    def test_unknown_currency_has_no_rate(self):
        assert FXConfig().rate_for("JPY") is None

    def test_non_positive_lookback_rejected(self):
        with pytest.raises(ValueError):
            CustodiaConfig(analytics={"risk_lookback_days": 0})
