"""Property-based tests using Hypothesis.

Tests invariants that should hold for ANY valid input:
- Active percentage allocations on one asset never sum past 100
- Herfindahl index stays in [0, 1] and top-N shares are ordered
- Drawdown is bounded and annualized volatility scales daily volatility
- Consolidated percentages add up to 100
"""

from __future__ import annotations

import math
from datetime import date, timedelta

from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from conftest import make_allocation, make_client, make_snapshots, make_wallet
from custodia.analytics.risk import analyze_risk, drawdown_fold
from custodia.book.allocations import (
    AllocationCandidate,
    AllocationType,
    active_percentage_total,
    validate_allocation,
)
from custodia.book.assets import AssetType
from custodia.portfolio.composition import concentration_metrics
from custodia.portfolio.valuation import consolidated_portfolio

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

percentages = st.floats(min_value=0.01, max_value=100.0, allow_nan=False, allow_infinity=False)

holding_values = st.lists(
    st.floats(min_value=0.0, max_value=1e9, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=40,
)

value_series = st.lists(
    st.floats(min_value=1.0, max_value=1e6, allow_nan=False, allow_infinity=False),
    min_size=2,
    max_size=120,
)


# ---------------------------------------------------------------------------
# Allocation cap
# ---------------------------------------------------------------------------

class TestAllocationCapProperty:
    @given(requests=st.lists(percentages, min_size=1, max_size=30))
    @settings(max_examples=200)
    def test_accepted_allocations_never_exceed_100(self, requests):
        """Applying only candidates the validator accepts keeps the total <= 100."""
        wallet = make_wallet("w1", 1000.0)
        accepted = []
        for i, value in enumerate(requests):
            candidate = AllocationCandidate(
                client_id=f"c{i}",
                asset_type=AssetType.WALLET,
                asset_id="w1",
                allocation_type=AllocationType.PERCENTAGE,
                value=value,
                start_date=date(2025, 1, 1),
            )
            result = validate_allocation(
                candidate, client=make_client(f"c{i}"), asset=wallet, existing=accepted,
            )
            if result.valid:
                accepted.append(make_allocation(f"c{i}", "w1", value))
            else:
                assert result.new_total_percentage > 100
            assert active_percentage_total(accepted) <= 100 + 1e-6

    @given(value=percentages)
    def test_second_allocation_for_same_client_rejected(self, value):
        existing = [make_allocation("c1", "w1", 1.0)]
        candidate = AllocationCandidate(
            "c1", AssetType.WALLET, "w1", AllocationType.PERCENTAGE, value, date(2025, 6, 1),
        )
        result = validate_allocation(
            candidate, client=make_client("c1"), asset=make_wallet("w1"), existing=existing,
        )
        assert not result.valid


# ---------------------------------------------------------------------------
# Concentration
# ---------------------------------------------------------------------------

class TestConcentrationProperty:
    @given(values=holding_values)
    def test_bounds(self, values):
        metrics = concentration_metrics(values)
        assert 0.0 <= metrics.herfindahl_index <= 1.0 + 1e-9
        assert metrics.top_asset_pct <= metrics.top5_pct + 1e-9
        assert metrics.top5_pct <= metrics.top10_pct + 1e-9
        assert metrics.top10_pct <= 100.0 + 1e-9

    @given(values=holding_values)
    def test_herfindahl_at_least_one_over_n(self, values):
        assume(sum(values) > 0)
        metrics = concentration_metrics(values)
        assert metrics.herfindahl_index >= 1.0 / len(values) - 1e-9


# ---------------------------------------------------------------------------
# Drawdown and volatility
# ---------------------------------------------------------------------------

class TestRiskProperty:
    @given(values=value_series)
    def test_drawdown_bounded(self, values):
        max_dd, peak, trough, current = drawdown_fold(values)
        assert 0.0 <= max_dd <= 100.0
        assert 0.0 <= current <= max_dd + 1e-9
        assert peak <= trough

    @given(values=value_series)
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_volatility_scaling(self, values):
        as_of = date(2026, 1, 1) + timedelta(days=len(values) - 1)
        report = analyze_risk(make_snapshots(values), as_of=as_of, lookback_days=len(values))
        vol = report.volatility
        assert math.isclose(
            vol.annualized_volatility_pct,
            vol.daily_volatility_pct * math.sqrt(252),
            rel_tol=1e-9,
            abs_tol=1e-9,
        )
        assert report.risk_rating in ("Low", "Medium", "High")


# ---------------------------------------------------------------------------
# Consolidated view
# ---------------------------------------------------------------------------

class TestConsolidatedProperty:
    @given(values=st.lists(
        st.floats(min_value=0.01, max_value=1e7, allow_nan=False, allow_infinity=False),
        min_size=1, max_size=20,
    ))
    def test_percentages_sum_to_100(self, values):
        assets = [make_wallet(f"w{i}", v) for i, v in enumerate(values)]
        view = consolidated_portfolio(assets, [], {}, page_size=len(values))
        assert math.isclose(sum(a.percentage for a in view.assets), 100.0, rel_tol=1e-6)
        ordered = [a.value_usd for a in view.assets]
        assert ordered == sorted(ordered, reverse=True)
