"""Clients, custody assets and their balances.

A custody asset is either a blockchain wallet or a traditional bank
account. Both share the allocation and valuation code paths; the
difference is captured by :class:`AssetType`, which knows how to turn a
balance list into a single USD value and which asset class it reports
under.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from custodia.config.schema import FXConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class ClientStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


@dataclass
class Client:
    """A client who can hold allocations of custody assets."""

    id: str
    name: str = ""
    email: str = ""
    status: ClientStatus = ClientStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is ClientStatus.ACTIVE

    @classmethod
    def from_row(cls, row: Any) -> "Client":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"] or "",
            status=ClientStatus(row["status"]),
        )


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

@dataclass
class AssetBalance:
    """One balance line of a custody asset.

    For wallets ``chain_or_currency`` is the chain and ``amount_usd`` the
    already-priced value. For accounts it is the currency, ``amount`` is
    in that currency and ``balance_type`` is AVAILABLE / CURRENT / LIMIT.
    """

    asset_id: str
    chain_or_currency: str
    symbol: str = ""
    amount: float = 0.0
    amount_usd: float | None = None
    balance_type: str | None = None
    last_updated: datetime | None = None

    @property
    def chain(self) -> str:
        return self.chain_or_currency

    @property
    def currency(self) -> str:
        return self.chain_or_currency.upper()

    @classmethod
    def from_row(cls, row: Any) -> "AssetBalance":
        last = row["last_updated"]
        return cls(
            asset_id=row["asset_id"],
            chain_or_currency=row["chain_or_currency"],
            symbol=row["symbol"] or "",
            amount=float(row["amount"] or 0.0),
            amount_usd=float(row["amount_usd"]) if row["amount_usd"] is not None else None,
            balance_type=row["balance_type"],
            last_updated=datetime.fromisoformat(last) if last else None,
        )


# ---------------------------------------------------------------------------
# Asset types
# ---------------------------------------------------------------------------

def _wallet_value(balances: Iterable[AssetBalance]) -> float:
    return sum(b.amount_usd or 0.0 for b in balances)


def _account_value(balances: Iterable[AssetBalance]) -> float:
    # Currency conversion is assumed to have happened upstream here.
    return sum(b.amount for b in balances)


class AssetType(str, Enum):
    """Custody asset variant, with its balance-resolution strategy."""

    WALLET = "Wallet"
    ACCOUNT = "Account"

    @classmethod
    def parse(cls, value: "str | AssetType") -> "AssetType":
        if isinstance(value, AssetType):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValueError(f"Asset type must be 'Wallet' or 'Account', got {value!r}")

    @property
    def asset_class(self) -> str:
        return "Crypto" if self is AssetType.WALLET else "Traditional"

    @property
    def not_found_message(self) -> str:
        return f"{self.value} not found"

    def total_value(self, balances: Iterable[AssetBalance]) -> float:
        """Sum a balance list the way this asset type is valued."""
        if self is AssetType.WALLET:
            return _wallet_value(balances)
        return _account_value(balances)


# ---------------------------------------------------------------------------
# Custody assets
# ---------------------------------------------------------------------------

AssetKey = tuple[AssetType, str]


@dataclass
class CustodyAsset:
    """A wallet or account held in custody, with its current balances."""

    id: str
    asset_type: AssetType
    identifier: str = ""
    """Wallet address or account number."""
    label: str | None = None
    balances: list[AssetBalance] = field(default_factory=list)

    @property
    def key(self) -> AssetKey:
        return (self.asset_type, self.id)

    @property
    def total_value(self) -> float:
        return self.asset_type.total_value(self.balances)

    @property
    def display_name(self) -> str:
        return self.label or self.identifier or self.id

    @classmethod
    def from_row(cls, row: Any, balances: list[AssetBalance] | None = None) -> "CustodyAsset":
        return cls(
            id=row["id"],
            asset_type=AssetType(row["asset_type"]),
            identifier=row["identifier"] or "",
            label=row["label"],
            balances=balances or [],
        )


def index_assets(assets: Iterable[CustodyAsset]) -> dict[AssetKey, CustodyAsset]:
    """Map assets by (asset_type, id)."""
    return {a.key: a for a in assets}


# ---------------------------------------------------------------------------
# Book-level balance helpers
# ---------------------------------------------------------------------------

def counted_balances(
    balances: Iterable[AssetBalance],
    counted_types: Sequence[str],
) -> list[AssetBalance]:
    """Account balances whose type counts towards book value."""
    allowed = {t.upper() for t in counted_types}
    return [b for b in balances if (b.balance_type or "").upper() in allowed]


def latest_balance(balances: Iterable[AssetBalance]) -> AssetBalance | None:
    """Most recently updated balance, or None for an empty list."""
    latest: AssetBalance | None = None
    for b in balances:
        if latest is None or (b.last_updated or datetime.min) > (latest.last_updated or datetime.min):
            latest = b
    return latest


def to_usd(amount: float, currency: str, fx: FXConfig) -> float:
    """Convert *amount* in *currency* to USD using the configured rate table."""
    rate = fx.rate_for(currency)
    if rate is None:
        logger.warning(
            "No FX rate for %s, using default rate %.4f", currency, fx.default_rate
        )
        rate = fx.default_rate
    return amount * rate


def account_book_value(asset: CustodyAsset, fx: FXConfig) -> float | None:
    """USD value of an account from its latest counted balance.

    Returns None when the account has no AVAILABLE/CURRENT balance; the
    book-wide views skip such accounts.
    """
    latest = latest_balance(counted_balances(asset.balances, fx.counted_balance_types))
    if latest is None:
        return None
    return to_usd(latest.amount, latest.currency, fx)


def book_value(asset: CustodyAsset, fx: FXConfig) -> float | None:
    """Asset value as seen by the book-wide views (consolidated, drift)."""
    if asset.asset_type is AssetType.WALLET:
        return asset.total_value
    return account_book_value(asset, fx)
