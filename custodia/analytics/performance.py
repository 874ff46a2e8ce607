"""Return analysis over valuation snapshots.

Works on any date-ordered series of objects exposing ``snapshot_date``,
``total_value``, ``crypto_value`` and ``traditional_value`` (normally
:class:`custodia.portfolio.snapshots.PortfolioSnapshot`), either one
client's rows or the book-wide rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any

import pandas as pd

from custodia.config.schema import AnalyticsConfig
from custodia.errors import InsufficientDataError

logger = logging.getLogger(__name__)

NO_PERFORMANCE_DATA = "No performance data available for the specified period"
NO_HISTORICAL_DATA = "No historical data available for the specified period"


class Granularity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: "str | Granularity") -> "Granularity":
        if isinstance(value, Granularity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Granularity must be one of daily, weekly, monthly, got {value!r}"
            ) from None


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class PerformanceSummary:
    start_value: float = 0.0
    end_value: float = 0.0
    absolute_return: float = 0.0
    roi_pct: float = 0.0
    annualized_return_pct: float = 0.0
    best_period_pct: float = 0.0
    worst_period_pct: float = 0.0
    positive_periods: int = 0
    negative_periods: int = 0


@dataclass
class PerformancePoint:
    date: date
    value: float
    return_pct: float | None
    crypto_value: float
    traditional_value: float


@dataclass
class PerformanceBreakdown:
    crypto_return_pct: float = 0.0
    traditional_return_pct: float = 0.0
    crypto_contribution_pct: float = 0.0
    traditional_contribution_pct: float = 0.0


@dataclass
class PerformanceReport:
    client_id: str | None
    from_date: date
    to_date: date
    granularity: Granularity
    summary: PerformanceSummary
    time_series: list[PerformancePoint] = field(default_factory=list)
    breakdown: PerformanceBreakdown = field(default_factory=PerformanceBreakdown)


@dataclass
class HistoricalPoint:
    date: date
    total_value: float
    crypto_value: float
    traditional_value: float
    daily_change_pct: float | None
    cumulative_return_pct: float


@dataclass
class HistoricalSummary:
    start_value: float
    end_value: float
    peak_value: float
    peak_date: date
    trough_value: float
    trough_date: date
    total_return_pct: float
    total_days: int


@dataclass
class HistoricalPerformance:
    client_id: str | None
    from_date: date
    to_date: date
    data_points: list[HistoricalPoint]
    summary: HistoricalSummary


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def resolve_range(
    from_date: date | None,
    to_date: date | None,
    default_days: int,
    today: date | None = None,
) -> tuple[date, date]:
    """Fill in a missing range end: *to* defaults to today, *from* to *to* minus *default_days*."""
    to_date = to_date or today or date.today()
    from_date = from_date or (to_date - timedelta(days=default_days))
    return from_date, to_date


def _frame(snapshots: Iterable[Any], from_date: date, to_date: date) -> pd.DataFrame:
    """Snapshot series as a date-sorted DataFrame restricted to [from, to]."""
    df = pd.DataFrame(
        [
            {
                "date": pd.Timestamp(s.snapshot_date),
                "total_value": float(s.total_value or 0.0),
                "crypto_value": float(s.crypto_value or 0.0),
                "traditional_value": float(s.traditional_value or 0.0),
            }
            for s in snapshots
        ],
        columns=["date", "total_value", "crypto_value", "traditional_value"],
    )
    if df.empty:
        return df
    mask = (df["date"] >= pd.Timestamp(from_date)) & (df["date"] <= pd.Timestamp(to_date))
    return df[mask].sort_values("date", kind="stable").reset_index(drop=True)


def downsample(df: pd.DataFrame, granularity: Granularity) -> pd.DataFrame:
    """Keep the last row of each ISO week or calendar month, in date order."""
    if granularity is Granularity.DAILY or df.empty:
        return df
    if granularity is Granularity.WEEKLY:
        iso = df["date"].dt.isocalendar()
        keys = [iso["year"], iso["week"]]
    else:
        keys = [df["date"].dt.year, df["date"].dt.month]
    return df.groupby(keys, sort=False).tail(1).reset_index(drop=True)


def period_returns(values: pd.Series) -> pd.Series:
    """Fractional step returns; NaN for the first step and zero denominators."""
    prev = values.shift(1)
    return ((values - prev) / prev).where(prev != 0)


def _pct_change(start: float, end: float) -> float:
    return (end - start) / start * 100 if start > 0 else 0.0


def _optional(value: float) -> float | None:
    return None if pd.isna(value) else float(value)


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

def analyze_performance(
    snapshots: Iterable[Any],
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    granularity: Granularity | str = Granularity.DAILY,
    client_id: str | None = None,
    config: AnalyticsConfig | None = None,
    today: date | None = None,
) -> PerformanceReport:
    """Summarise returns over a snapshot series.

    Parameters:
        snapshots: Date-ordered snapshots for one client or the book.
        from_date, to_date: Inclusive range. Defaults to the last
            ``performance_default_days`` ending today.
        granularity: daily, weekly (last snapshot per ISO week) or monthly
            (last snapshot per month).
        client_id: Carried into the report.
        config: Analytics defaults.

    Returns:
        PerformanceReport with summary, time series and crypto/traditional
        attribution.

    Raises:
        InsufficientDataError: No snapshot falls inside the range.
    """
    config = config or AnalyticsConfig()
    granularity = Granularity.parse(granularity)
    from_date, to_date = resolve_range(from_date, to_date, config.performance_default_days, today)

    df = downsample(_frame(snapshots, from_date, to_date), granularity)
    if df.empty:
        raise InsufficientDataError(NO_PERFORMANCE_DATA)

    first, last = df.iloc[0], df.iloc[-1]
    start_value = float(first["total_value"])
    end_value = float(last["total_value"])

    days = (to_date - from_date).days
    annualized = 0.0
    if start_value > 0 and end_value >= 0 and days > 0:
        annualized = ((end_value / start_value) ** (365.0 / days) - 1) * 100

    returns_pct = period_returns(df["total_value"]) * 100
    steps = returns_pct.dropna()

    summary = PerformanceSummary(
        start_value=start_value,
        end_value=end_value,
        absolute_return=end_value - start_value,
        roi_pct=_pct_change(start_value, end_value),
        annualized_return_pct=annualized,
        best_period_pct=float(steps.max()) if not steps.empty else 0.0,
        worst_period_pct=float(steps.min()) if not steps.empty else 0.0,
        positive_periods=int((steps > 0).sum()),
        negative_periods=int((steps < 0).sum()),
    )

    time_series = [
        PerformancePoint(
            date=row.date.date(),
            value=float(row.total_value),
            return_pct=_optional(ret),
            crypto_value=float(row.crypto_value),
            traditional_value=float(row.traditional_value),
        )
        for row, ret in zip(df.itertuples(index=False), returns_pct)
    ]

    start_crypto, end_crypto = float(first["crypto_value"]), float(last["crypto_value"])
    start_trad, end_trad = float(first["traditional_value"]), float(last["traditional_value"])
    breakdown = PerformanceBreakdown(
        crypto_return_pct=_pct_change(start_crypto, end_crypto),
        traditional_return_pct=_pct_change(start_trad, end_trad),
        crypto_contribution_pct=(end_crypto - start_crypto) / start_value * 100 if start_value > 0 else 0.0,
        traditional_contribution_pct=(end_trad - start_trad) / start_value * 100 if start_value > 0 else 0.0,
    )

    logger.debug(
        "Performance %s..%s (%s): %d point(s), ROI %.2f%%",
        from_date, to_date, granularity.value, len(df), summary.roi_pct,
    )
    return PerformanceReport(
        client_id=client_id,
        from_date=from_date,
        to_date=to_date,
        granularity=granularity,
        summary=summary,
        time_series=time_series,
        breakdown=breakdown,
    )


# ---------------------------------------------------------------------------
# Historical performance
# ---------------------------------------------------------------------------

def historical_performance(
    snapshots: Iterable[Any],
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    client_id: str | None = None,
    config: AnalyticsConfig | None = None,
    today: date | None = None,
) -> HistoricalPerformance:
    """Every snapshot in the range with daily and cumulative returns, plus peak and trough.

    Raises:
        InsufficientDataError: No snapshot falls inside the range.
    """
    config = config or AnalyticsConfig()
    from_date, to_date = resolve_range(from_date, to_date, config.history_default_days, today)

    df = _frame(snapshots, from_date, to_date)
    if df.empty:
        raise InsufficientDataError(NO_HISTORICAL_DATA)

    values = df["total_value"]
    start_value = float(values.iloc[0])
    daily = period_returns(values) * 100
    cumulative = (values - start_value) / start_value * 100 if start_value > 0 else values * 0.0

    points = [
        HistoricalPoint(
            date=row.date.date(),
            total_value=float(row.total_value),
            crypto_value=float(row.crypto_value),
            traditional_value=float(row.traditional_value),
            daily_change_pct=_optional(change),
            cumulative_return_pct=float(cum),
        )
        for row, change, cum in zip(df.itertuples(index=False), daily, cumulative)
    ]

    peak, trough = values.idxmax(), values.idxmin()
    summary = HistoricalSummary(
        start_value=start_value,
        end_value=float(values.iloc[-1]),
        peak_value=float(values[peak]),
        peak_date=df.at[peak, "date"].date(),
        trough_value=float(values[trough]),
        trough_date=df.at[trough, "date"].date(),
        total_return_pct=_pct_change(start_value, float(values.iloc[-1])),
        total_days=(to_date - from_date).days,
    )
    return HistoricalPerformance(
        client_id=client_id,
        from_date=from_date,
        to_date=to_date,
        data_points=points,
        summary=summary,
    )


# ---------------------------------------------------------------------------
# Database wrappers
# ---------------------------------------------------------------------------

def get_performance(
    db: Any,
    client_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    granularity: Granularity | str = Granularity.DAILY,
    config: AnalyticsConfig | None = None,
) -> PerformanceReport:
    from custodia.portfolio.snapshots import load_snapshots

    config = config or AnalyticsConfig()
    from_date, to_date = resolve_range(from_date, to_date, config.performance_default_days)
    return analyze_performance(
        load_snapshots(db, client_id, from_date, to_date),
        from_date=from_date, to_date=to_date, granularity=granularity,
        client_id=client_id, config=config,
    )


def get_historical_performance(
    db: Any,
    client_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    config: AnalyticsConfig | None = None,
) -> HistoricalPerformance:
    from custodia.portfolio.snapshots import load_snapshots

    config = config or AnalyticsConfig()
    from_date, to_date = resolve_range(from_date, to_date, config.history_default_days)
    return historical_performance(
        load_snapshots(db, client_id, from_date, to_date),
        from_date=from_date, to_date=to_date, client_id=client_id, config=config,
    )
