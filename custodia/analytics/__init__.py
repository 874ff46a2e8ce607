"""Performance and risk analytics over valuation snapshots."""

from custodia.analytics.performance import (
    Granularity,
    PerformanceReport,
    analyze_performance,
    historical_performance,
)
from custodia.analytics.risk import RiskReport, analyze_risk

__all__ = [
    "Granularity",
    "PerformanceReport",
    "RiskReport",
    "analyze_performance",
    "analyze_risk",
    "historical_performance",
]
