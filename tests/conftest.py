"""Shared test fixtures for Custodia.

Provides an in-memory database with the schema applied, a seeded book of
clients, wallets and accounts, and snapshot series builders.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from custodia.book.allocations import Allocation, AllocationType
from custodia.book.assets import AssetBalance, AssetType, Client, ClientStatus, CustodyAsset
from custodia.config.schema import CustodiaConfig
from custodia.portfolio.snapshots import PortfolioSnapshot
from custodia.storage import queries
from custodia.storage.database import Database
from custodia.storage.migrations import ensure_schema

BALANCE_TS = datetime(2026, 1, 2, 12, 0, 0)

# ---------------------------------------------------------------------------
# Core infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def test_config(tmp_path: Path) -> CustodiaConfig:
    """Default config with a temp database path."""
    return CustodiaConfig(database={"path": str(tmp_path / "test.db")})


@pytest.fixture
def test_db(tmp_path: Path) -> Database:
    """Database with schema applied, using temp file."""
    db = Database(tmp_path / "test.db")
    ensure_schema(db)
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Database:
    """In-memory database for fast unit tests."""
    db = Database(":memory:")
    migration_path = Path(__file__).parent.parent / "custodia" / "migrations" / "001_initial.sql"
    db.executescript(migration_path.read_text())
    yield db
    db.close()


# ---------------------------------------------------------------------------
# Seeded book
# ---------------------------------------------------------------------------

def seed_book(db: Database) -> Database:
    """Three clients, two wallets and two accounts.

    Wallet values: w-treasury 10,000 (ethereum 6,000 + polygon 4,000),
    w-cold 5,000 (bitcoin). Account a-usd holds 2,000 USD AVAILABLE;
    a-brl holds 10,000 BRL CURRENT (2,000 USD at the default rate).
    """
    queries.upsert_client(db, "c-alice", "Alice", email="alice@example.com")
    queries.upsert_client(db, "c-bob", "Bob", email="bob@example.com")
    queries.upsert_client(db, "c-carol", "Carol", status=ClientStatus.INACTIVE)

    queries.upsert_asset(db, "w-treasury", AssetType.WALLET, identifier="0xabc", label="Treasury")
    queries.upsert_asset(db, "w-cold", AssetType.WALLET, identifier="bc1qcold")
    queries.upsert_asset(db, "a-usd", AssetType.ACCOUNT, identifier="ACC-001", label="Operating")
    queries.upsert_asset(db, "a-brl", AssetType.ACCOUNT, identifier="ACC-002")

    queries.replace_balances(db, "w-treasury", [
        AssetBalance("w-treasury", "ethereum", "ETH", 2.0, 6000.0, last_updated=BALANCE_TS),
        AssetBalance("w-treasury", "polygon", "USDC", 4000.0, 4000.0, last_updated=BALANCE_TS),
    ])
    queries.replace_balances(db, "w-cold", [
        AssetBalance("w-cold", "bitcoin", "BTC", 0.05, 5000.0, last_updated=BALANCE_TS),
    ])
    queries.replace_balances(db, "a-usd", [
        AssetBalance("a-usd", "USD", "USD", 2000.0, balance_type="AVAILABLE", last_updated=BALANCE_TS),
    ])
    queries.replace_balances(db, "a-brl", [
        AssetBalance("a-brl", "BRL", "BRL", 10000.0, balance_type="CURRENT", last_updated=BALANCE_TS),
    ])
    return db


@pytest.fixture
def book_db(memory_db: Database) -> Database:
    """In-memory database with the seeded book and no allocations."""
    return seed_book(memory_db)


# ---------------------------------------------------------------------------
# Plain-data builders
# ---------------------------------------------------------------------------

def make_client(id: str = "c1", name: str = "Client One", status: ClientStatus = ClientStatus.ACTIVE) -> Client:
    return Client(id=id, name=name, status=status)


def make_wallet(id: str = "w1", *usd_values: float, chain: str = "ethereum") -> CustodyAsset:
    return CustodyAsset(
        id=id,
        asset_type=AssetType.WALLET,
        identifier=f"0x{id}",
        balances=[
            AssetBalance(id, chain, f"TK{i}", 1.0, v, last_updated=BALANCE_TS)
            for i, v in enumerate(usd_values)
        ],
    )


def make_account(id: str = "a1", amount: float = 0.0, currency: str = "USD",
                 balance_type: str = "AVAILABLE") -> CustodyAsset:
    return CustodyAsset(
        id=id,
        asset_type=AssetType.ACCOUNT,
        identifier=f"ACC-{id}",
        balances=[AssetBalance(id, currency, currency, amount, balance_type=balance_type,
                               last_updated=BALANCE_TS)],
    )


_alloc_seq = iter(range(1, 1_000_000))


def make_allocation(
    client_id: str = "c1",
    asset_id: str = "w1",
    value: float = 50.0,
    allocation_type: AllocationType = AllocationType.PERCENTAGE,
    asset_type: AssetType = AssetType.WALLET,
    start_date: date = date(2025, 1, 1),
    end_date: date | None = None,
    id: str | None = None,
) -> Allocation:
    return Allocation(
        id=id or f"alloc-{next(_alloc_seq)}",
        client_id=client_id,
        asset_type=asset_type,
        asset_id=asset_id,
        allocation_type=allocation_type,
        value=value,
        start_date=start_date,
        end_date=end_date,
    )


def make_snapshots(
    values: list[float],
    start: date = date(2026, 1, 1),
    step_days: int = 1,
    client_id: str | None = None,
    crypto_share: float = 0.6,
) -> list[PortfolioSnapshot]:
    """Snapshot series with one value per step, split crypto/traditional by *crypto_share*."""
    return [
        PortfolioSnapshot(
            snapshot_date=start + timedelta(days=i * step_days),
            client_id=client_id,
            total_value=v,
            crypto_value=v * crypto_share,
            traditional_value=v * (1 - crypto_share),
        )
        for i, v in enumerate(values)
    ]
