"""Book composition: value by chain, currency and asset class, plus concentration.

Concentration is measured over the group values (one per chain, one per
currency), not per individual wallet or account.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from custodia.book.assets import AssetBalance, AssetType, counted_balances, latest_balance, to_usd
from custodia.config.schema import FXConfig

logger = logging.getLogger(__name__)


@dataclass
class ChainBreakdown:
    chain: str
    value_usd: float
    percentage: float
    wallet_count: int


@dataclass
class CurrencyBreakdown:
    currency: str
    value_usd: float
    percentage: float
    account_count: int


@dataclass
class AssetClassBreakdown:
    asset_class: str
    value_usd: float
    percentage: float
    asset_count: int


@dataclass
class ConcentrationMetrics:
    top_asset_pct: float = 0.0
    top5_pct: float = 0.0
    top10_pct: float = 0.0
    total_assets: int = 0
    herfindahl_index: float = 0.0


@dataclass
class PortfolioComposition:
    total_value_usd: float
    asset_classes: list[AssetClassBreakdown]
    chain_breakdown: list[ChainBreakdown]
    currency_breakdown: list[CurrencyBreakdown]
    concentration: ConcentrationMetrics
    calculated_at: datetime = field(default_factory=datetime.now)


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def concentration_metrics(values: Iterable[float]) -> ConcentrationMetrics:
    """Top-N shares and Herfindahl index of a set of holding values.

    A zero total gives all zeros.
    """
    ordered = sorted(values, reverse=True)
    total = sum(ordered)
    if total <= 0:
        return ConcentrationMetrics(total_assets=len(ordered))
    return ConcentrationMetrics(
        top_asset_pct=_pct(ordered[0], total),
        top5_pct=_pct(sum(ordered[:5]), total),
        top10_pct=_pct(sum(ordered[:10]), total),
        total_assets=len(ordered),
        herfindahl_index=sum((v / total) ** 2 for v in ordered),
    )


def compute_composition(
    wallet_balances: Iterable[AssetBalance],
    account_balances: Iterable[AssetBalance],
    fx: FXConfig | None = None,
) -> PortfolioComposition:
    """Break the book's value down by chain, currency and asset class.

    Parameters:
        wallet_balances: Balance lines of every wallet.
        account_balances: Balance lines of every account. Only the latest
            AVAILABLE/CURRENT line per (account, currency) counts.
        fx: Currency to USD rate table. Unknown currencies use the default
            rate and log a warning.

    Returns:
        PortfolioComposition with breakdowns sorted by value, largest first.
    """
    fx = fx or FXConfig()

    # Crypto: positive USD balances, by chain.
    chain_value: dict[str, float] = defaultdict(float)
    chain_wallets: dict[str, set[str]] = defaultdict(set)
    for b in wallet_balances:
        if b.amount_usd is None or b.amount_usd <= 0:
            continue
        chain_value[b.chain] += b.amount_usd
        chain_wallets[b.chain].add(b.asset_id)

    # Traditional: latest counted balance per (account, currency), by currency.
    per_account: dict[tuple[str, str], list[AssetBalance]] = defaultdict(list)
    for b in counted_balances(account_balances, fx.counted_balance_types):
        per_account[(b.asset_id, b.currency)].append(b)

    currency_value: dict[str, float] = defaultdict(float)
    currency_accounts: dict[str, int] = defaultdict(int)
    for (_, currency), lines in per_account.items():
        latest = latest_balance(lines)
        currency_value[currency] += to_usd(latest.amount, currency, fx)
        currency_accounts[currency] += 1

    total_crypto = sum(chain_value.values())
    total_traditional = sum(currency_value.values())
    total = total_crypto + total_traditional

    chains = sorted(
        (
            ChainBreakdown(chain, v, _pct(v, total), len(chain_wallets[chain]))
            for chain, v in chain_value.items()
        ),
        key=lambda c: c.value_usd, reverse=True,
    )
    currencies = sorted(
        (
            CurrencyBreakdown(currency, v, _pct(v, total), currency_accounts[currency])
            for currency, v in currency_value.items()
        ),
        key=lambda c: c.value_usd, reverse=True,
    )
    asset_classes = [
        AssetClassBreakdown(
            AssetType.WALLET.asset_class, total_crypto, _pct(total_crypto, total),
            sum(c.wallet_count for c in chains),
        ),
        AssetClassBreakdown(
            AssetType.ACCOUNT.asset_class, total_traditional, _pct(total_traditional, total),
            sum(c.account_count for c in currencies),
        ),
    ]

    return PortfolioComposition(
        total_value_usd=total,
        asset_classes=asset_classes,
        chain_breakdown=chains,
        currency_breakdown=currencies,
        concentration=concentration_metrics(
            [c.value_usd for c in chains] + [c.value_usd for c in currencies]
        ),
    )


def get_composition(db: Any, fx: FXConfig | None = None) -> PortfolioComposition:
    from custodia.storage import queries

    return compute_composition(
        queries.list_balances(db, asset_type=AssetType.WALLET),
        queries.list_balances(db, asset_type=AssetType.ACCOUNT),
        fx,
    )
