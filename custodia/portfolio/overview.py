"""Book overview: assets under management, headcounts, top holdings, recent change.

Totals come from :func:`compute_composition`, so the overview and the
composition report always agree on AUM. Top holdings group wallet lines
by token symbol and account balances by currency; the recent-change block
reads book-wide snapshots and is None when there are none.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from custodia.book.assets import AssetBalance, AssetType, ClientStatus
from custodia.config.schema import FXConfig
from custodia.portfolio.composition import compute_composition
from custodia.portfolio.snapshots import PortfolioSnapshot, load_snapshots

logger = logging.getLogger(__name__)

TOP_PER_CLASS = 5
TOP_OVERALL = 10
SUMMARY_WINDOW_DAYS = 30


@dataclass
class TopAsset:
    asset_class: str
    symbol: str
    name: str
    value_usd: float
    percentage: float = 0.0


@dataclass
class PerformanceSummary:
    as_of: date
    total_roi_pct: float
    total_profit_loss_usd: float
    day_change_pct: float
    week_change_pct: float
    month_change_pct: float


@dataclass
class PortfolioOverview:
    total_aum_usd: float
    crypto_value_usd: float
    traditional_value_usd: float
    crypto_percentage: float
    traditional_percentage: float
    total_wallets: int
    total_accounts: int
    total_clients: int
    top_assets: list[TopAsset] = field(default_factory=list)
    performance: PerformanceSummary | None = None
    calculated_at: datetime = field(default_factory=datetime.now)


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def _change_pct(latest: float, earlier: PortfolioSnapshot | None) -> float:
    if earlier is None or earlier.total_value <= 0:
        return 0.0
    return (latest - earlier.total_value) / earlier.total_value * 100


def summarize_performance(
    snapshots: Sequence[PortfolioSnapshot],
    window_days: int = SUMMARY_WINDOW_DAYS,
) -> PerformanceSummary | None:
    """Change of the book value over the last day, week and month.

    Changes are measured from the latest snapshot back to the most recent
    snapshot at least N days older. ROI and profit/loss compare the latest
    snapshot with the oldest one inside *window_days*.
    """
    if not snapshots:
        return None
    ordered = sorted(snapshots, key=lambda s: s.snapshot_date)
    latest = ordered[-1]

    def on_or_before(days: int) -> PortfolioSnapshot | None:
        cutoff = latest.snapshot_date - timedelta(days=days)
        earlier = [s for s in ordered if s.snapshot_date <= cutoff]
        return earlier[-1] if earlier else None

    window_start = latest.snapshot_date - timedelta(days=window_days)
    first = next(s for s in ordered if s.snapshot_date >= window_start)

    return PerformanceSummary(
        as_of=latest.snapshot_date,
        total_roi_pct=_change_pct(latest.total_value, first),
        total_profit_loss_usd=latest.total_value - first.total_value,
        day_change_pct=_change_pct(latest.total_value, on_or_before(1)),
        week_change_pct=_change_pct(latest.total_value, on_or_before(7)),
        month_change_pct=_change_pct(latest.total_value, on_or_before(30)),
    )


def top_crypto_assets(wallet_balances: Iterable[AssetBalance], limit: int = TOP_PER_CLASS) -> list[TopAsset]:
    """Positive wallet value summed per token symbol, largest first."""
    by_symbol: dict[str, float] = defaultdict(float)
    for b in wallet_balances:
        if b.amount_usd is None or b.amount_usd <= 0:
            continue
        by_symbol[b.symbol or "UNKNOWN"] += b.amount_usd
    ranked = sorted(by_symbol.items(), key=lambda kv: kv[1], reverse=True)
    return [
        TopAsset(AssetType.WALLET.asset_class, symbol, symbol, value)
        for symbol, value in ranked[:limit]
    ]


def portfolio_overview(
    wallet_balances: Iterable[AssetBalance],
    account_balances: Iterable[AssetBalance],
    *,
    total_wallets: int,
    total_accounts: int,
    total_clients: int,
    snapshots: Sequence[PortfolioSnapshot] = (),
    fx: FXConfig | None = None,
) -> PortfolioOverview:
    """Assemble the book overview.

    Parameters:
        wallet_balances, account_balances: Balance lines of the whole book.
        total_wallets, total_accounts: Asset counts, including empty assets.
        total_clients: Number of Active clients.
        snapshots: Book-wide snapshots for the recent-change block.
        fx: Currency to USD rate table for account balances.
    """
    wallet_balances = list(wallet_balances)
    composition = compute_composition(wallet_balances, account_balances, fx)
    classes = {c.asset_class: c for c in composition.asset_classes}
    crypto = classes[AssetType.WALLET.asset_class].value_usd
    traditional = classes[AssetType.ACCOUNT.asset_class].value_usd
    total = composition.total_value_usd

    traditional_top = [
        TopAsset(AssetType.ACCOUNT.asset_class, c.currency, f"{c.currency} Accounts", c.value_usd)
        for c in composition.currency_breakdown[:TOP_PER_CLASS]
    ]
    top = sorted(
        top_crypto_assets(wallet_balances) + traditional_top,
        key=lambda a: a.value_usd, reverse=True,
    )[:TOP_OVERALL]
    for a in top:
        a.percentage = _pct(a.value_usd, total)

    return PortfolioOverview(
        total_aum_usd=total,
        crypto_value_usd=crypto,
        traditional_value_usd=traditional,
        crypto_percentage=_pct(crypto, total),
        traditional_percentage=_pct(traditional, total),
        total_wallets=total_wallets,
        total_accounts=total_accounts,
        total_clients=total_clients,
        top_assets=top,
        performance=summarize_performance(snapshots),
    )


def get_portfolio_overview(db: Any, fx: FXConfig | None = None) -> PortfolioOverview:
    from custodia.storage import queries

    assets = queries.list_assets(db, with_balances=False)
    overview = portfolio_overview(
        queries.list_balances(db, asset_type=AssetType.WALLET),
        queries.list_balances(db, asset_type=AssetType.ACCOUNT),
        total_wallets=sum(1 for a in assets if a.asset_type is AssetType.WALLET),
        total_accounts=sum(1 for a in assets if a.asset_type is AssetType.ACCOUNT),
        total_clients=len(queries.list_clients(db, status=ClientStatus.ACTIVE)),
        snapshots=load_snapshots(db),
        fx=fx,
    )
    logger.debug("Overview: AUM %.2f across %d client(s)", overview.total_aum_usd, overview.total_clients)
    return overview
