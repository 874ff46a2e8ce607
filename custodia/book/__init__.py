"""Book of clients, custody assets and allocations."""

from custodia.book.allocations import (
    Allocation,
    AllocationCandidate,
    AllocationType,
    AllocationValidation,
    validate_allocation,
)
from custodia.book.assets import AssetBalance, AssetType, Client, ClientStatus, CustodyAsset
from custodia.book.conflicts import AllocationConflict, scan_conflicts

__all__ = [
    "Allocation",
    "AllocationCandidate",
    "AllocationConflict",
    "AllocationType",
    "AllocationValidation",
    "AssetBalance",
    "AssetType",
    "Client",
    "ClientStatus",
    "CustodyAsset",
    "scan_conflicts",
    "validate_allocation",
]
