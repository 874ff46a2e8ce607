"""Book-wide over-allocation audit.

Finds assets whose active Percentage allocations add up to more than
100%. The write path prevents this, so a non-empty result means the book
was changed behind the engine's back (manual SQL, a race in an older
writer, an import). An empty list is the normal, healthy answer.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, ClassVar

from custodia.book.allocations import Allocation, active_percentage_total
from custodia.book.assets import AssetKey, AssetType, Client, CustodyAsset

logger = logging.getLogger(__name__)


@dataclass
class ConflictingAllocation:
    allocation_id: str
    client_id: str
    client_name: str
    value: float
    start_date: date


@dataclass
class AllocationConflict:
    """One over-allocated asset and the allocations that make it so."""

    asset_type: AssetType
    asset_id: str
    asset_identifier: str
    total_percentage: float
    allocations: list[ConflictingAllocation] = field(default_factory=list)

    derived_fields: ClassVar[tuple[str, ...]] = ("allocation_count", "excess_percentage")

    @property
    def allocation_count(self) -> int:
        return len(self.allocations)

    @property
    def excess_percentage(self) -> float:
        return self.total_percentage - 100.0


def scan_conflicts(
    allocations: Iterable[Allocation],
    assets: Mapping[AssetKey, CustodyAsset],
    clients: Mapping[str, Client],
    max_total_pct: float = 100.0,
) -> list[AllocationConflict]:
    """Group active Percentage allocations by asset and report the overflows.

    Parameters:
        allocations: Allocations to scan; ended and FixedAmount rows are ignored.
        assets: Custody assets keyed by (asset_type, id), for identifiers.
        clients: Clients keyed by id, for names.
        max_total_pct: Ceiling above which an asset is in conflict.

    Returns:
        One AllocationConflict per over-allocated asset, largest total first.
    """
    groups: dict[AssetKey, list[Allocation]] = defaultdict(list)
    for a in allocations:
        if a.is_active and a.is_percentage:
            groups[a.asset_key].append(a)

    conflicts: list[AllocationConflict] = []
    for key, group in groups.items():
        total = active_percentage_total(group)
        if total <= max_total_pct:
            continue

        asset = assets.get(key)
        conflicts.append(AllocationConflict(
            asset_type=key[0],
            asset_id=key[1],
            asset_identifier=asset.identifier if asset and asset.identifier else "Unknown",
            total_percentage=total,
            allocations=[
                ConflictingAllocation(
                    allocation_id=a.id,
                    client_id=a.client_id,
                    client_name=clients[a.client_id].name if a.client_id in clients else "Unknown",
                    value=a.value,
                    start_date=a.start_date,
                )
                for a in sorted(group, key=lambda a: a.start_date)
            ],
        ))

    conflicts.sort(key=lambda c: c.total_percentage, reverse=True)
    if conflicts:
        logger.warning("Found %d over-allocated asset(s)", len(conflicts))
    return conflicts


def find_conflicts(db: Any) -> list[AllocationConflict]:
    """Scan every active allocation in the database for over-allocation."""
    from custodia.storage import queries

    allocations = queries.list_allocations(db, active_only=True)
    assets = {a.key: a for a in queries.list_assets(db, with_balances=False)}
    clients = {c.id: c for c in queries.list_clients(db)}
    return scan_conflicts(allocations, assets, clients)
