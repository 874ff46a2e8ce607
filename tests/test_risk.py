"""Tests for risk metrics: volatility, risk-adjusted returns, drawdown."""

from __future__ import annotations

import math
from datetime import date, timedelta

import numpy as np
import pytest

from conftest import make_snapshots
from custodia.analytics.risk import (
    INSUFFICIENT_DATA,
    NO_RETURNS,
    analyze_risk,
    drawdown_fold,
    get_risk_metrics,
    risk_rating,
    step_returns,
    volatility_level,
)
from custodia.config.schema import AnalyticsConfig
from custodia.errors import InsufficientDataError
from custodia.storage import queries

JAN_1 = date(2026, 1, 1)


def _risk(values, **kwargs):
    kwargs.setdefault("as_of", JAN_1 + timedelta(days=len(values) - 1))
    return analyze_risk(make_snapshots(values), **kwargs)


class TestBuildingBlocks:
    def test_step_returns(self):
        np.testing.assert_allclose(step_returns([100, 110, 99]), [0.1, -0.1])

    def test_step_returns_skip_zero(self):
        np.testing.assert_allclose(step_returns([0, 100, 50]), [-0.5])

    def test_step_returns_short(self):
        assert step_returns([100]).size == 0

    @pytest.mark.parametrize("vol,expected", [(5, "Low"), (10, "Medium"), (24.9, "Medium"), (25, "High")])
    def test_volatility_level(self, vol, expected):
        assert volatility_level(vol, {"Low": 10.0, "Medium": 25.0}) == expected

    def test_risk_rating(self):
        thresholds = {"low_below": 10.0, "high_above": 25.0}
        assert risk_rating("Low", 5, thresholds) == "Low"
        assert risk_rating("Low", 15, thresholds) == "Medium"
        assert risk_rating("High", 30, thresholds) == "High"
        assert risk_rating("High", 20, thresholds) == "Medium"
        assert risk_rating("Medium", 50, thresholds) == "Medium"


class TestDrawdownFold:
    def test_peak_and_trough(self):
        max_dd, peak, trough, current = drawdown_fold([100, 120, 150, 120])
        assert max_dd == pytest.approx(20)
        assert (peak, trough) == (2, 3)
        assert current == pytest.approx(20)

    def test_recovered(self):
        max_dd, peak, trough, current = drawdown_fold([100, 50, 120])
        assert max_dd == pytest.approx(50)
        assert (peak, trough) == (0, 1)
        assert current == 0

    def test_monotonic_rise(self):
        assert drawdown_fold([1, 2, 3]) == (0.0, 0, 0, 0.0)

    def test_deepest_of_two_drawdowns(self):
        max_dd, peak, trough, _ = drawdown_fold([100, 90, 110, 55, 60])
        assert max_dd == pytest.approx(50)
        assert (peak, trough) == (2, 3)


class TestAnalyzeRisk:
    def test_drawdown_report(self):
        report = _risk([100, 120, 150, 120])
        dd = report.drawdown
        assert dd.max_drawdown_pct == pytest.approx(20)
        assert dd.max_drawdown_date == date(2026, 1, 3)
        assert dd.trough_date == date(2026, 1, 4)
        assert dd.current_drawdown_pct == pytest.approx(20)
        assert dd.days_in_drawdown == 1

    def test_volatility_identity(self):
        report = _risk([100, 103, 99, 104, 101, 108])
        vol = report.volatility
        assert vol.daily_volatility_pct == pytest.approx(vol.standard_deviation * 100)
        assert vol.annualized_volatility_pct == pytest.approx(
            vol.daily_volatility_pct * math.sqrt(252)
        )

    def test_population_statistics(self):
        values = [100, 110, 99, 105]
        returns = np.array([0.1, -0.1, 105 / 99 - 1])
        report = _risk(values)
        assert report.volatility.standard_deviation == pytest.approx(np.std(returns))

        config = AnalyticsConfig()
        excess = returns.mean() * 252 - config.risk_free_rate / 252
        expected_sharpe = excess / np.std(returns) * math.sqrt(252)
        assert report.risk_adjusted.sharpe_ratio == pytest.approx(expected_sharpe)

    def test_calmar(self):
        values = [100, 120, 150, 120]
        report = _risk(values)
        annual_mean = np.mean([0.2, 0.25, -0.2]) * 252
        assert report.risk_adjusted.calmar_ratio == pytest.approx(annual_mean * 100 / 20)

    def test_sortino_uses_downside_spread(self):
        values = [100, 110, 99, 104, 95, 120]
        report = _risk(values)
        returns = step_returns(values)
        negatives = returns[returns < 0]
        excess = returns.mean() * 252 - 0.04 / 252
        assert report.risk_adjusted.sortino_ratio == pytest.approx(
            excess / np.std(negatives) * math.sqrt(252)
        )

    def test_no_losses_falls_back_to_total_spread(self):
        report = _risk([100, 101, 103, 104])
        ratios = report.risk_adjusted
        assert ratios.sortino_ratio == pytest.approx(ratios.sharpe_ratio)
        assert report.drawdown.max_drawdown_pct == 0
        assert ratios.calmar_ratio == 0
        assert report.drawdown.days_in_drawdown == 0

    def test_flat_series(self):
        report = _risk([100, 100, 100])
        assert report.volatility.standard_deviation == 0
        assert report.risk_adjusted.sharpe_ratio == 0
        assert report.risk_adjusted.sortino_ratio == 0
        assert report.volatility.level == "Low"
        assert report.risk_rating == "Low"

    def test_volatile_series_rated_high(self):
        report = _risk([100, 150, 60, 140, 50, 40])
        assert report.volatility.level == "High"
        assert report.risk_rating == "High"

    def test_insufficient_data(self):
        with pytest.raises(InsufficientDataError, match=INSUFFICIENT_DATA):
            _risk([100])

    def test_no_returns(self):
        with pytest.raises(InsufficientDataError, match=NO_RETURNS):
            _risk([0, 0, 0])

    def test_window_excludes_old_snapshots(self):
        snapshots = make_snapshots([50, 100, 110], step_days=20)
        report = analyze_risk(snapshots, as_of=date(2026, 2, 10), lookback_days=30)
        assert report.observations == 2
        assert report.period_days == 30

    def test_window_too_short(self):
        snapshots = make_snapshots([100, 110, 120], step_days=20)
        with pytest.raises(InsufficientDataError):
            analyze_risk(snapshots, as_of=date(2026, 2, 10), lookback_days=5)


class TestFromDatabase:
    def test_client_risk(self, book_db):
        for i, value in enumerate([100, 120, 150, 120]):
            queries.upsert_snapshot(book_db, JAN_1 + timedelta(days=i), "c-alice", value, value, 0)
        report = get_risk_metrics(book_db, "c-alice", 30, as_of=date(2026, 1, 4))
        assert report.client_id == "c-alice"
        assert report.observations == 4
        assert report.drawdown.max_drawdown_pct == pytest.approx(20)

    def test_empty_book(self, book_db):
        with pytest.raises(InsufficientDataError):
            get_risk_metrics(book_db, as_of=date(2026, 1, 4))
