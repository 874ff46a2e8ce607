"""Client allocations of custody assets and the rules that gate them.

An allocation gives a client either a percentage of an asset's live value
or a fixed USD amount. Book invariants:

  - Active Percentage allocations on one asset never sum past 100.
  - A client holds at most one active allocation per asset.
  - ``end_date`` is write-once, not before ``start_date``, not in the future.

:func:`validate_allocation` is the single source of truth for the first
two; the write path in :mod:`custodia.book.service` calls it rather than
re-implementing the checks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from custodia.book.assets import AssetType, Client, CustodyAsset
from custodia.config.schema import AllocationConfig
from custodia.errors import AllocationRuleError

DUPLICATE_ACTIVE_MESSAGE = (
    "An active allocation already exists for this client and asset. "
    "End the existing allocation first."
)
OVERLAP_MESSAGE = "Allocation dates overlap with existing allocation for this client and asset"


class AllocationType(str, Enum):
    PERCENTAGE = "Percentage"
    FIXED_AMOUNT = "FixedAmount"

    @classmethod
    def parse(cls, value: "str | AllocationType") -> "AllocationType":
        if isinstance(value, AllocationType):
            return value
        normalized = str(value).strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if normalized == member.value.lower():
                return member
        raise ValueError(
            f"Allocation type must be 'Percentage' or 'FixedAmount', got {value!r}"
        )


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class Allocation:
    """A client's share of one custody asset."""

    id: str
    client_id: str
    asset_type: AssetType
    asset_id: str
    allocation_type: AllocationType
    value: float
    start_date: date
    end_date: date | None = None
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    @property
    def is_percentage(self) -> bool:
        return self.allocation_type is AllocationType.PERCENTAGE

    @property
    def asset_key(self) -> tuple[AssetType, str]:
        return (self.asset_type, self.asset_id)

    def covers(self, day: date) -> bool:
        """True if *day* falls in [start_date, end_date] (open-ended when active)."""
        return self.start_date <= day and (self.end_date is None or self.end_date >= day)

    @classmethod
    def from_row(cls, row: Any) -> "Allocation":
        return cls(
            id=row["id"],
            client_id=row["client_id"],
            asset_type=AssetType(row["asset_type"]),
            asset_id=row["asset_id"],
            allocation_type=AllocationType(row["allocation_type"]),
            value=float(row["value"]),
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
            notes=row["notes"] or "",
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )


@dataclass
class AllocationCandidate:
    """An allocation as proposed by a create or update request."""

    client_id: str
    asset_type: AssetType
    asset_id: str
    allocation_type: AllocationType
    value: float
    start_date: date
    exclude_allocation_id: str | None = None
    """Set on updates so the allocation is not checked against itself."""


@dataclass
class AllocationValidation:
    """Outcome of validating one candidate allocation."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    current_total_percentage: float | None = None
    new_total_percentage: float | None = None

    def raise_for_errors(self) -> None:
        if self.errors:
            raise AllocationRuleError("; ".join(self.errors), errors=list(self.errors))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _others(
    allocations: Iterable[Allocation],
    candidate: AllocationCandidate,
) -> list[Allocation]:
    """Allocations on the candidate's asset, minus the one being updated."""
    return [
        a for a in allocations
        if a.asset_type is candidate.asset_type
        and a.asset_id == candidate.asset_id
        and a.id != candidate.exclude_allocation_id
    ]


def active_percentage_total(
    allocations: Iterable[Allocation],
    precision: int = 8,
) -> float:
    """Sum of active Percentage values, rounded to *precision* decimals."""
    return round(
        sum(a.value for a in allocations if a.is_active and a.is_percentage),
        precision,
    )


def _fmt(value: float) -> str:
    return f"{value:g}"


def check_value_shape(allocation_type: AllocationType, value: float) -> list[str]:
    """Per-type bounds on the allocation value."""
    if value <= 0:
        return ["Allocation value must be greater than 0"]
    if allocation_type is AllocationType.PERCENTAGE and value > 100:
        return ["Percentage allocation must be between 0 and 100"]
    return []


def validate_allocation(
    candidate: AllocationCandidate,
    *,
    client: Client | None,
    asset: CustodyAsset | None,
    existing: Iterable[Allocation],
    config: AllocationConfig | None = None,
) -> AllocationValidation:
    """Validate a candidate allocation against the book.

    Parameters:
        candidate: The allocation being created or updated.
        client: The candidate's client (any status), or None if unknown.
        asset: The candidate's custody asset, or None if unknown.
        existing: Allocations already on the candidate's asset (active and
            ended, any client). Allocations on other assets are ignored.
        config: Thresholds for the 100% cap and the high-total warning.

    Returns:
        AllocationValidation. Warnings never make a candidate invalid.
    """
    config = config or AllocationConfig()
    result = AllocationValidation()

    if client is None:
        result.errors.append("Client not found")
    if asset is None:
        result.errors.append(candidate.asset_type.not_found_message)
    if result.errors:
        result.valid = False
        return result

    result.errors.extend(check_value_shape(candidate.allocation_type, candidate.value))

    others = _others(existing, candidate)
    mine = [a for a in others if a.client_id == candidate.client_id]

    if any(a.is_active for a in mine):
        result.errors.append(DUPLICATE_ACTIVE_MESSAGE)

    if candidate.allocation_type is AllocationType.PERCENTAGE:
        current = active_percentage_total(others, config.total_precision)
        new_total = round(current + candidate.value, config.total_precision)
        result.current_total_percentage = current
        result.new_total_percentage = new_total

        if new_total > config.max_total_pct:
            result.errors.append(
                f"Total percentage allocation would exceed {_fmt(config.max_total_pct)}%. "
                f"Current: {_fmt(current)}%, Requested: {_fmt(candidate.value)}%, "
                f"New Total: {_fmt(new_total)}%"
            )
        elif new_total > config.warning_threshold_pct:
            result.warnings.append(
                f"Total percentage allocation is high ({_fmt(new_total)}%). "
                f"Current: {_fmt(current)}%, Requested: {_fmt(candidate.value)}%"
            )

    if any(a.covers(candidate.start_date) for a in mine):
        result.warnings.append(OVERLAP_MESSAGE)

    result.valid = not result.errors
    return result


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)
