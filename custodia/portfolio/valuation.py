"""Client portfolio valuation and the consolidated book view.

Two views value allocations differently and are kept apart on purpose:

  - :func:`value_client_portfolio` credits a FixedAmount allocation with its
    full value, even when the asset is worth less.
  - :func:`consolidated_portfolio` caps a FixedAmount allocation at the
    asset's value.

Pinned by ``tests/test_valuation.py``; do not merge the two.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from custodia.book.allocations import Allocation, AllocationType
from custodia.book.assets import (
    AssetKey,
    AssetType,
    Client,
    CustodyAsset,
    book_value,
    counted_balances,
    latest_balance,
)
from custodia.config.schema import FXConfig
from custodia.errors import NotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class TokenBalance:
    chain: str
    symbol: str
    amount: float
    amount_usd: float | None


@dataclass
class PortfolioAsset:
    """One allocation's contribution to a client portfolio."""

    asset_type: AssetType
    asset_id: str
    asset_identifier: str
    allocation_type: AllocationType
    allocation_value: float
    total_asset_value: float
    client_allocated_value: float
    tokens: list[TokenBalance] = field(default_factory=list)


@dataclass
class ClientPortfolio:
    client_id: str
    client_name: str
    total_value: float = 0.0
    crypto_value: float = 0.0
    traditional_value: float = 0.0
    assets: list[PortfolioAsset] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)


@dataclass
class ClientAllocationInfo:
    client_id: str
    client_name: str
    allocation_type: AllocationType
    allocation_value: float
    allocated_value: float


@dataclass
class ConsolidatedAsset:
    """One custody asset as seen from the whole book."""

    asset_id: str
    asset_type: AssetType
    identifier: str
    symbol: str
    name: str
    value_usd: float
    percentage: float = 0.0
    allocated_clients: list[ClientAllocationInfo] = field(default_factory=list)
    last_updated: datetime | None = None

    derived_fields: ClassVar[tuple[str, ...]] = ("client_allocations",)

    @property
    def client_allocations(self) -> int:
        return len(self.allocated_clients)


@dataclass
class ConsolidatedPortfolio:
    total_value_usd: float
    assets: list[ConsolidatedAsset]
    total_assets: int
    page: int
    page_size: int
    last_updated: datetime = field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Allocated value
# ---------------------------------------------------------------------------

def allocated_value(allocation: Allocation, asset_value: float, *, cap: bool) -> float:
    """USD value of *allocation* on an asset worth *asset_value*.

    Percentage allocations take their share of the asset. FixedAmount
    allocations take their face value, limited to the asset's value when
    *cap* is set.
    """
    if allocation.is_percentage:
        return asset_value * (allocation.value / 100.0)
    if cap:
        return min(allocation.value, asset_value)
    return allocation.value


# ---------------------------------------------------------------------------
# Client portfolio
# ---------------------------------------------------------------------------

def value_client_portfolio(
    client: Client,
    allocations: Iterable[Allocation],
    assets: Mapping[AssetKey, CustodyAsset],
) -> ClientPortfolio:
    """Value a client's active allocations.

    Parameters:
        client: The client being valued.
        allocations: The client's allocations. Ended ones are ignored.
        assets: Custody assets with balances, keyed by (asset_type, id).

    Returns:
        ClientPortfolio with per-asset breakdown and crypto/traditional
        totals. A client without active allocations values at zero.
    """
    portfolio = ClientPortfolio(client_id=client.id, client_name=client.name)

    for allocation in allocations:
        if not allocation.is_active:
            continue
        asset = assets.get(allocation.asset_key)
        if asset is None:
            logger.warning(
                "Skipping allocation %s: %s %s not found",
                allocation.id, allocation.asset_type.value, allocation.asset_id,
            )
            continue

        asset_value = asset.total_value
        client_value = allocated_value(allocation, asset_value, cap=False)

        if asset.asset_type is AssetType.WALLET:
            portfolio.crypto_value += client_value
            tokens = [
                TokenBalance(chain=b.chain, symbol=b.symbol, amount=b.amount, amount_usd=b.amount_usd)
                for b in asset.balances
            ]
        else:
            portfolio.traditional_value += client_value
            tokens = []

        portfolio.assets.append(PortfolioAsset(
            asset_type=asset.asset_type,
            asset_id=asset.id,
            asset_identifier=asset.identifier,
            allocation_type=allocation.allocation_type,
            allocation_value=allocation.value,
            total_asset_value=asset_value,
            client_allocated_value=client_value,
            tokens=tokens,
        ))

    portfolio.total_value = portfolio.crypto_value + portfolio.traditional_value
    return portfolio


def get_client_portfolio(db: Any, client_id: str) -> ClientPortfolio:
    """Load and value one client's portfolio."""
    from custodia.storage import queries

    client = queries.get_client(db, client_id)
    if client is None:
        raise NotFoundError("Client not found")

    allocations = queries.list_allocations(db, client_id=client_id, active_only=True)
    assets: dict[AssetKey, CustodyAsset] = {}
    for key in {a.asset_key for a in allocations}:
        asset = queries.get_asset(db, key[1], key[0])
        if asset is not None:
            assets[key] = asset
    return value_client_portfolio(client, allocations, assets)


# ---------------------------------------------------------------------------
# Consolidated book view
# ---------------------------------------------------------------------------

def _wallet_row(asset: CustodyAsset) -> ConsolidatedAsset:
    value = asset.total_value
    primary = max(asset.balances, key=lambda b: b.amount_usd or 0.0, default=None)
    last = max((b.last_updated for b in asset.balances if b.last_updated), default=None)
    return ConsolidatedAsset(
        asset_id=asset.id,
        asset_type=asset.asset_type,
        identifier=asset.identifier,
        symbol=primary.symbol if primary and primary.symbol else "MULTI",
        name=asset.label or "Wallet",
        value_usd=value,
        last_updated=last,
    )


def _account_row(asset: CustodyAsset, fx: FXConfig) -> ConsolidatedAsset | None:
    value = book_value(asset, fx)
    if value is None:
        return None
    latest = latest_balance(counted_balances(asset.balances, fx.counted_balance_types))
    return ConsolidatedAsset(
        asset_id=asset.id,
        asset_type=asset.asset_type,
        identifier=asset.identifier or asset.id,
        symbol=latest.currency if latest else "",
        name=asset.label or "Account",
        value_usd=value,
        last_updated=latest.last_updated if latest else None,
    )


def consolidated_portfolio(
    assets: Iterable[CustodyAsset],
    allocations: Iterable[Allocation],
    clients: Mapping[str, Client],
    *,
    fx: FXConfig | None = None,
    asset_class: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> ConsolidatedPortfolio:
    """Every custody asset with the clients that hold a share of it.

    Parameters:
        assets: Custody assets with balances.
        allocations: Allocations to attach. Ended ones are ignored.
        clients: Clients keyed by id, for names.
        fx: Rate table for account balances in other currencies.
        asset_class: "Crypto" or "Traditional" to restrict the view.
        page, page_size: 1-based slice of the value-sorted rows.

    Returns:
        ConsolidatedPortfolio. ``total_value_usd`` and ``total_assets``
        cover every row, not just the requested page.
    """
    fx = fx or FXConfig()
    by_asset: dict[AssetKey, list[Allocation]] = defaultdict(list)
    for a in allocations:
        if a.is_active:
            by_asset[a.asset_key].append(a)

    rows: list[ConsolidatedAsset] = []
    for asset in assets:
        if asset_class and asset.asset_type.asset_class != asset_class:
            continue
        if asset.asset_type is AssetType.WALLET:
            row = _wallet_row(asset)
        else:
            row = _account_row(asset, fx)
            if row is None:
                logger.debug("Skipping account %s: no counted balance", asset.id)
                continue

        row.allocated_clients = [
            ClientAllocationInfo(
                client_id=a.client_id,
                client_name=clients[a.client_id].name if a.client_id in clients else "Unknown",
                allocation_type=a.allocation_type,
                allocation_value=a.value,
                allocated_value=allocated_value(a, row.value_usd, cap=True),
            )
            for a in by_asset.get(asset.key, [])
        ]
        rows.append(row)

    total = sum(r.value_usd for r in rows)
    rows.sort(key=lambda r: r.value_usd, reverse=True)
    for r in rows:
        r.percentage = (r.value_usd / total * 100) if total > 0 else 0.0

    start = (max(page, 1) - 1) * page_size
    return ConsolidatedPortfolio(
        total_value_usd=total,
        assets=rows[start:start + page_size],
        total_assets=len(rows),
        page=page,
        page_size=page_size,
    )


def get_consolidated_portfolio(
    db: Any,
    fx: FXConfig | None = None,
    asset_class: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> ConsolidatedPortfolio:
    from custodia.storage import queries

    return consolidated_portfolio(
        queries.list_assets(db),
        queries.list_allocations(db, active_only=True),
        {c.id: c for c in queries.list_clients(db)},
        fx=fx,
        asset_class=asset_class,
        page=page,
        page_size=page_size,
    )
