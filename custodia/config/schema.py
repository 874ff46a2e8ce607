"""Pydantic models for config.yaml validation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from custodia.config.defaults import (
    ALLOCATION_RULES,
    ANALYTICS,
    COUNTED_BALANCE_TYPES,
    DEFAULT_FX_RATE,
    DRIFT_SEVERITY,
    FX_RATES,
    RISK_RATING_DRAWDOWN,
    VOLATILITY_TIERS,
)

# ---------------------------------------------------------------------------
# Allocation Config
# ---------------------------------------------------------------------------

class AllocationConfig(BaseModel):
    max_total_pct: float = ALLOCATION_RULES["max_total_pct"]
    warning_threshold_pct: float = ALLOCATION_RULES["warning_threshold_pct"]
    total_precision: int = ALLOCATION_RULES["total_precision"]

    @model_validator(mode="after")
    def warning_below_max(self) -> "AllocationConfig":
        if not 0 < self.warning_threshold_pct <= self.max_total_pct:
            raise ValueError(
                f"warning_threshold_pct must be in (0, {self.max_total_pct}], "
                f"got {self.warning_threshold_pct}"
            )
        return self


# ---------------------------------------------------------------------------
# FX Config
# ---------------------------------------------------------------------------

class FXConfig(BaseModel):
    rates: dict[str, float] = Field(default_factory=lambda: dict(FX_RATES))
    default_rate: float = DEFAULT_FX_RATE
    counted_balance_types: list[str] = Field(
        default_factory=lambda: list(COUNTED_BALANCE_TYPES)
    )

    @field_validator("rates")
    @classmethod
    def rates_positive(cls, v: dict[str, float]) -> dict[str, float]:
        rates = {k.upper(): float(r) for k, r in v.items()}
        for currency, rate in rates.items():
            if rate <= 0:
                raise ValueError(f"FX rate for {currency} must be positive, got {rate}")
        rates["USD"] = 1.0
        return rates

    def rate_for(self, currency: str) -> float | None:
        """USD multiplier for *currency*, or None when the table lacks it."""
        return self.rates.get((currency or "").upper())


# ---------------------------------------------------------------------------
# Analytics Config
# ---------------------------------------------------------------------------

class AnalyticsConfig(BaseModel):
    risk_free_rate: float = ANALYTICS["risk_free_rate"]
    trading_days: int = ANALYTICS["trading_days"]
    risk_lookback_days: int = ANALYTICS["risk_lookback_days"]
    performance_default_days: int = ANALYTICS["performance_default_days"]
    history_default_days: int = ANALYTICS["history_default_days"]
    drift_threshold_pct: float = ANALYTICS["drift_threshold_pct"]
    volatility_tiers: dict[str, float] = Field(
        default_factory=lambda: dict(VOLATILITY_TIERS)
    )
    risk_rating_drawdown: dict[str, float] = Field(
        default_factory=lambda: dict(RISK_RATING_DRAWDOWN)
    )
    drift_severity: dict[str, float] = Field(
        default_factory=lambda: dict(DRIFT_SEVERITY)
    )

    @field_validator("trading_days", "risk_lookback_days")
    @classmethod
    def positive_days(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"day counts must be positive, got {v}")
        return v


# ---------------------------------------------------------------------------
# Database Config
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    path: str = "~/.custodia/custodia.db"


# ---------------------------------------------------------------------------
# Top-Level Config
# ---------------------------------------------------------------------------

class CustodiaConfig(BaseModel):
    """Root configuration model for Custodia."""

    version: int = 1
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    fx: FXConfig = Field(default_factory=FXConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)

    @model_validator(mode="before")
    @classmethod
    def coerce_none_to_defaults(cls, data: Any) -> Any:
        """YAML parses empty keys as None. Drop them so defaults apply."""
        if isinstance(data, dict):
            for key in ("database", "allocation", "fx", "analytics"):
                if key in data and data[key] is None:
                    del data[key]
        return data
