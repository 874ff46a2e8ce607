"""Risk metrics over valuation snapshots: volatility, risk-adjusted returns, drawdown.

Returns are simple step returns between consecutive snapshots; steps from
a zero value are skipped. Mean and variance are population statistics
(divide by n).

The excess return used by Sharpe and Sortino subtracts ``risk_free_rate /
trading_days`` from the annualized mean return. The two terms are on
different time bases; the formula is kept as-is so reported ratios stay
comparable with existing reports.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

import numpy as np

from custodia.config.schema import AnalyticsConfig
from custodia.errors import InsufficientDataError

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "Insufficient data to calculate risk metrics"
NO_RETURNS = "Unable to calculate returns from available data"


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class VolatilityMetrics:
    daily_volatility_pct: float
    annualized_volatility_pct: float
    standard_deviation: float
    level: str


@dataclass
class RiskAdjustedReturns:
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float


@dataclass
class DrawdownMetrics:
    max_drawdown_pct: float
    max_drawdown_date: date
    """Date of the peak the maximum drawdown is measured from."""
    trough_date: date
    """Date the maximum drawdown was observed."""
    current_drawdown_pct: float
    days_in_drawdown: int


@dataclass
class RiskReport:
    client_id: str | None
    period_days: int
    observations: int
    volatility: VolatilityMetrics
    risk_adjusted: RiskAdjustedReturns
    drawdown: DrawdownMetrics
    risk_rating: str
    calculated_at: datetime = field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def step_returns(values: Sequence[float]) -> np.ndarray:
    """Fractional returns between consecutive values, skipping zero denominators."""
    arr = np.asarray(values, dtype=float)
    if len(arr) < 2:
        return np.array([], dtype=float)
    prev, curr = arr[:-1], arr[1:]
    valid = prev != 0
    return (curr[valid] - prev[valid]) / prev[valid]


def volatility_level(annualized_pct: float, tiers: dict[str, float]) -> str:
    if annualized_pct < tiers.get("Low", 10.0):
        return "Low"
    if annualized_pct < tiers.get("Medium", 25.0):
        return "Medium"
    return "High"


def drawdown_fold(values: Sequence[float]) -> tuple[float, int, int, float]:
    """Walk the series once, tracking the running peak.

    Returns:
        (max_drawdown_pct, peak_index, trough_index, current_drawdown_pct).
        The peak index is where the running maximum was set for the
        worst drawdown; both indices are 0 when there is no drawdown.
    """
    running_max = values[0]
    running_max_idx = 0
    max_dd, peak_idx, trough_idx = 0.0, 0, 0

    for i, value in enumerate(values):
        if value > running_max:
            running_max, running_max_idx = value, i
        dd = (running_max - value) / running_max * 100 if running_max > 0 else 0.0
        if dd > max_dd:
            max_dd, peak_idx, trough_idx = dd, running_max_idx, i

    current = (running_max - values[-1]) / running_max * 100 if running_max > 0 else 0.0
    return max_dd, peak_idx, trough_idx, current


def risk_rating(level: str, max_drawdown_pct: float, thresholds: dict[str, float]) -> str:
    if level == "Low" and max_drawdown_pct < thresholds.get("low_below", 10.0):
        return "Low"
    if level == "High" and max_drawdown_pct > thresholds.get("high_above", 25.0):
        return "High"
    return "Medium"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyze_risk(
    snapshots: Iterable[Any],
    *,
    config: AnalyticsConfig | None = None,
    as_of: date | None = None,
    lookback_days: int | None = None,
    client_id: str | None = None,
) -> RiskReport:
    """Volatility, Sharpe/Sortino/Calmar and drawdown over a lookback window.

    Parameters:
        snapshots: Date-ordered snapshots for one client or the book.
        config: Risk-free rate, trading days and tier thresholds.
        as_of: End of the window. Defaults to today.
        lookback_days: Window length. Defaults to ``risk_lookback_days``.
        client_id: Carried into the report.

    Raises:
        InsufficientDataError: Fewer than two snapshots in the window, or no
            step with a non-zero starting value.
    """
    config = config or AnalyticsConfig()
    as_of = as_of or date.today()
    lookback = lookback_days or config.risk_lookback_days
    start = as_of - timedelta(days=lookback)

    window = sorted(
        (s for s in snapshots if start <= s.snapshot_date <= as_of),
        key=lambda s: s.snapshot_date,
    )
    if len(window) < 2:
        raise InsufficientDataError(INSUFFICIENT_DATA)

    dates = [s.snapshot_date for s in window]
    values = [float(s.total_value or 0.0) for s in window]

    returns = step_returns(values)
    if returns.size == 0:
        raise InsufficientDataError(NO_RETURNS)

    days = config.trading_days
    mean = float(np.mean(returns))
    std = float(np.std(returns))  # population, ddof=0

    daily_vol = std * 100
    annual_vol = daily_vol * math.sqrt(days)
    level = volatility_level(annual_vol, config.volatility_tiers)

    annual_mean = mean * days
    excess = annual_mean - config.risk_free_rate / days
    sharpe = excess / std * math.sqrt(days) if std != 0 else 0.0

    negatives = returns[returns < 0]
    downside = float(np.std(negatives)) if negatives.size else std
    sortino = excess / downside * math.sqrt(days) if downside != 0 else 0.0

    max_dd, peak_idx, trough_idx, current_dd = drawdown_fold(values)
    max_dd_date = dates[peak_idx]
    calmar = annual_mean * 100 / max_dd if max_dd > 0 else 0.0
    days_in_dd = (as_of - max_dd_date).days if current_dd > 0 else 0

    report = RiskReport(
        client_id=client_id,
        period_days=lookback,
        observations=len(window),
        volatility=VolatilityMetrics(
            daily_volatility_pct=daily_vol,
            annualized_volatility_pct=annual_vol,
            standard_deviation=std,
            level=level,
        ),
        risk_adjusted=RiskAdjustedReturns(
            sharpe_ratio=sharpe,
            sortino_ratio=sortino,
            calmar_ratio=calmar,
        ),
        drawdown=DrawdownMetrics(
            max_drawdown_pct=max_dd,
            max_drawdown_date=max_dd_date,
            trough_date=dates[trough_idx],
            current_drawdown_pct=current_dd,
            days_in_drawdown=days_in_dd,
        ),
        risk_rating=risk_rating(level, max_dd, config.risk_rating_drawdown),
    )
    logger.debug(
        "Risk over %d snapshot(s): vol %.2f%% (%s), max drawdown %.2f%%",
        len(window), annual_vol, level, max_dd,
    )
    return report


def get_risk_metrics(
    db: Any,
    client_id: str | None = None,
    lookback_days: int | None = None,
    config: AnalyticsConfig | None = None,
    as_of: date | None = None,
) -> RiskReport:
    from custodia.portfolio.snapshots import load_snapshots

    config = config or AnalyticsConfig()
    as_of = as_of or date.today()
    lookback = lookback_days or config.risk_lookback_days
    return analyze_risk(
        load_snapshots(db, client_id, as_of - timedelta(days=lookback), as_of),
        config=config, as_of=as_of, lookback_days=lookback, client_id=client_id,
    )
