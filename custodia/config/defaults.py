"""Default values for allocation rules, currency conversion and analytics.

The FX table is a placeholder until a price feed is wired in upstream;
override it in config.yaml for anything other than local testing.
"""

# ---------------------------------------------------------------------------
# Allocation rules
# ---------------------------------------------------------------------------
ALLOCATION_RULES = {
    "max_total_pct": 100.0,        # I1 ceiling for active Percentage allocations
    "warning_threshold_pct": 90.0,  # above this (but <= max) -> warning only
    "total_precision": 8,          # decimals kept when comparing percentage sums
}

# ---------------------------------------------------------------------------
# Currency conversion (currency -> USD multiplier)
# ---------------------------------------------------------------------------
FX_RATES = {
    "USD": 1.0,
    "BRL": 0.20,
}
DEFAULT_FX_RATE = 0.20

# Account balance types that count towards book value
COUNTED_BALANCE_TYPES = ("AVAILABLE", "CURRENT")

# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
ANALYTICS = {
    "risk_free_rate": 0.04,         # annual
    "trading_days": 252,
    "risk_lookback_days": 30,
    "performance_default_days": 30,
    "history_default_days": 90,
    "drift_threshold_pct": 5.0,
}

# Annualized volatility (%) upper bounds per tier; anything above is "High"
VOLATILITY_TIERS = {
    "Low": 10.0,
    "Medium": 25.0,
}

# Max drawdown (%) bounds used by the overall risk rating
RISK_RATING_DRAWDOWN = {
    "low_below": 10.0,
    "high_above": 25.0,
}

# Allocation drift severity bounds (%)
DRIFT_SEVERITY = {
    "Low": 5.0,
    "Medium": 10.0,
}
