"""Allocation drift: how far each active allocation sits from its target."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from custodia.book.allocations import Allocation, AllocationType
from custodia.book.assets import AssetKey, AssetType, Client, CustodyAsset, book_value
from custodia.config.schema import AnalyticsConfig, FXConfig
from custodia.portfolio.valuation import allocated_value

logger = logging.getLogger(__name__)


@dataclass
class AllocationDrift:
    allocation_id: str
    client_id: str
    client_name: str
    asset_type: AssetType
    asset_id: str
    asset_identifier: str
    allocation_type: AllocationType
    target_value: float
    current_value: float
    target_pct: float
    current_pct: float
    drift_pct: float
    drift_usd: float
    severity: str
    recommended_action: str | None = None


@dataclass
class DriftReport:
    drifts: list[AllocationDrift]
    total_allocations: int
    drifts_over_threshold: int
    average_drift_pct: float
    threshold_pct: float
    calculated_at: datetime = field(default_factory=datetime.now)


def drift_severity(drift_pct: float, tiers: Mapping[str, float]) -> str:
    if drift_pct < tiers.get("Low", 5.0):
        return "Low"
    if drift_pct < tiers.get("Medium", 10.0):
        return "Medium"
    return "High"


def compute_allocation_drift(
    allocations: Iterable[Allocation],
    assets: Mapping[AssetKey, CustodyAsset],
    clients: Mapping[str, Client],
    *,
    fx: FXConfig | None = None,
    config: AnalyticsConfig | None = None,
    threshold_pct: float | None = None,
) -> DriftReport:
    """Compare every active allocation's current value against its target.

    Percentage allocations are measured as a share of the client's total
    book value; FixedAmount allocations as a share of the asset, with the
    current value capped at what the asset is worth. Allocations on assets
    with no value are skipped.

    Parameters:
        allocations: Allocations to report on. Ended ones are ignored.
        assets: Custody assets with balances, keyed by (asset_type, id).
        clients: Clients keyed by id, for names.
        fx: Rate table for account balances.
        config: Severity tiers and the default threshold.
        threshold_pct: Drift above which an action is recommended.

    Returns:
        DriftReport, largest drift first.
    """
    fx = fx or FXConfig()
    config = config or AnalyticsConfig()
    threshold = config.drift_threshold_pct if threshold_pct is None else threshold_pct

    active = [a for a in allocations if a.is_active]
    asset_values = {
        key: book_value(asset, fx) or 0.0 for key, asset in assets.items()
    }

    # Client totals as the book view values them (FixedAmount capped).
    client_totals: dict[str, float] = defaultdict(float)
    for a in active:
        client_totals[a.client_id] += allocated_value(
            a, asset_values.get(a.asset_key, 0.0), cap=True,
        )

    drifts: list[AllocationDrift] = []
    for a in active:
        asset_value = asset_values.get(a.asset_key, 0.0)
        if asset_value == 0:
            logger.warning("Asset %s has zero value, skipping drift calculation", a.asset_id)
            continue

        if a.is_percentage:
            target_pct = a.value
            target_value = asset_value * a.value / 100
            current_value = target_value
            client_total = client_totals[a.client_id]
            current_pct = current_value / client_total * 100 if client_total > 0 else 0.0
        else:
            target_value = a.value
            current_value = min(a.value, asset_value)
            target_pct = target_value / asset_value * 100
            current_pct = current_value / asset_value * 100

        drift_pct = abs(current_pct - target_pct)
        drift_usd = abs(current_value - target_value)

        action = None
        if drift_pct > threshold:
            verb = "reducing" if current_pct > target_pct else "increasing"
            action = f"Consider {verb} allocation by {drift_usd:.2f} USD"

        asset = assets.get(a.asset_key)
        client = clients.get(a.client_id)
        drifts.append(AllocationDrift(
            allocation_id=a.id,
            client_id=a.client_id,
            client_name=client.name if client else "Unknown",
            asset_type=a.asset_type,
            asset_id=a.asset_id,
            asset_identifier=asset.display_name if asset else a.asset_id,
            allocation_type=a.allocation_type,
            target_value=target_value,
            current_value=current_value,
            target_pct=target_pct,
            current_pct=current_pct,
            drift_pct=drift_pct,
            drift_usd=drift_usd,
            severity=drift_severity(drift_pct, config.drift_severity),
            recommended_action=action,
        ))

    drifts.sort(key=lambda d: d.drift_pct, reverse=True)
    return DriftReport(
        drifts=drifts,
        total_allocations=len(active),
        drifts_over_threshold=sum(1 for d in drifts if d.drift_pct > threshold),
        average_drift_pct=sum(d.drift_pct for d in drifts) / len(drifts) if drifts else 0.0,
        threshold_pct=threshold,
    )


def get_allocation_drift(
    db: Any,
    fx: FXConfig | None = None,
    config: AnalyticsConfig | None = None,
    threshold_pct: float | None = None,
) -> DriftReport:
    from custodia.storage import queries

    return compute_allocation_drift(
        queries.list_allocations(db, active_only=True),
        {a.key: a for a in queries.list_assets(db)},
        {c.id: c for c in queries.list_clients(db)},
        fx=fx,
        config=config,
        threshold_pct=threshold_pct,
    )
