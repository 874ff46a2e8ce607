"""Named query functions for database operations.

Allocation writes (``insert_allocation``, ``update_allocation_terms``,
``set_allocation_end_date``, ``delete_allocation``) do not commit: they run
inside the caller's ``db.transaction()`` so the read-validate-write
sequence lands atomically. Everything else opens its own transaction,
which waits on the database write lock while another one is open.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Any

from custodia.book.allocations import Allocation
from custodia.book.assets import AssetBalance, AssetType, Client, ClientStatus, CustodyAsset
from custodia.storage.database import Database

# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

def upsert_client(
    db: Database,
    id: str,
    name: str,
    *,
    email: str = "",
    status: ClientStatus | str = ClientStatus.ACTIVE,
    notes: str | None = None,
) -> None:
    """Insert or update a client."""
    with db.transaction():
        db.execute(
            """INSERT INTO clients (id, name, email, status, notes, updated_at)
            VALUES (?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, email=excluded.email, status=excluded.status,
                notes=excluded.notes, updated_at=datetime('now')
            """,
            (id, name, email, ClientStatus(status).value, notes),
        )


def get_client(db: Database, client_id: str) -> Client | None:
    """Get a single client, any status."""
    row = db.fetchone("SELECT * FROM clients WHERE id = ?", (client_id,))
    return Client.from_row(row) if row else None


def list_clients(db: Database, *, status: ClientStatus | str | None = None) -> list[Client]:
    """List clients, optionally filtering by status."""
    if status is not None:
        rows = db.fetchall(
            "SELECT * FROM clients WHERE status = ? ORDER BY name",
            (ClientStatus(status).value,),
        )
    else:
        rows = db.fetchall("SELECT * FROM clients ORDER BY name")
    return [Client.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Custody assets and balances
# ---------------------------------------------------------------------------

def upsert_asset(
    db: Database,
    id: str,
    asset_type: AssetType | str,
    *,
    identifier: str = "",
    label: str | None = None,
) -> None:
    """Insert or update a wallet or account."""
    with db.transaction():
        db.execute(
            """INSERT INTO custody_assets (id, asset_type, identifier, label, updated_at)
            VALUES (?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                asset_type=excluded.asset_type, identifier=excluded.identifier,
                label=excluded.label, updated_at=datetime('now')
            """,
            (id, AssetType.parse(asset_type).value, identifier, label),
        )


def replace_balances(db: Database, asset_id: str, balances: list[AssetBalance]) -> int:
    """Replace an asset's balance lines. Returns the number written."""
    with db.transaction():
        db.execute("DELETE FROM asset_balances WHERE asset_id = ?", (asset_id,))
        db.executemany(
            """INSERT INTO asset_balances (
                asset_id, chain_or_currency, symbol, amount, amount_usd,
                balance_type, last_updated
            ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    asset_id, b.chain_or_currency, b.symbol, b.amount, b.amount_usd,
                    b.balance_type,
                    (b.last_updated or datetime.now()).isoformat(sep=" ", timespec="seconds"),
                )
                for b in balances
            ],
        )
    return len(balances)


def list_balances(db: Database, *, asset_type: AssetType | str | None = None) -> list[AssetBalance]:
    """All balance lines, optionally restricted to wallets or accounts."""
    if asset_type is not None:
        rows = db.fetchall(
            """SELECT b.* FROM asset_balances b
            JOIN custody_assets a ON a.id = b.asset_id
            WHERE a.asset_type = ?
            ORDER BY b.asset_id, b.id""",
            (AssetType.parse(asset_type).value,),
        )
    else:
        rows = db.fetchall("SELECT * FROM asset_balances ORDER BY asset_id, id")
    return [AssetBalance.from_row(r) for r in rows]


def _balances_by_asset(db: Database, asset_ids: list[str]) -> dict[str, list[AssetBalance]]:
    grouped: dict[str, list[AssetBalance]] = defaultdict(list)
    if not asset_ids:
        return grouped
    placeholders = ",".join("?" for _ in asset_ids)
    rows = db.fetchall(
        f"SELECT * FROM asset_balances WHERE asset_id IN ({placeholders}) ORDER BY id",
        tuple(asset_ids),
    )
    for r in rows:
        grouped[r["asset_id"]].append(AssetBalance.from_row(r))
    return grouped


def get_asset(
    db: Database,
    asset_id: str,
    asset_type: AssetType | str | None = None,
) -> CustodyAsset | None:
    """Asset reader: one asset with its current balance list."""
    if asset_type is not None:
        row = db.fetchone(
            "SELECT * FROM custody_assets WHERE id = ? AND asset_type = ?",
            (asset_id, AssetType.parse(asset_type).value),
        )
    else:
        row = db.fetchone("SELECT * FROM custody_assets WHERE id = ?", (asset_id,))
    if row is None:
        return None
    balances = _balances_by_asset(db, [asset_id]).get(asset_id, [])
    return CustodyAsset.from_row(row, balances)


def list_assets(
    db: Database,
    *,
    asset_type: AssetType | str | None = None,
    with_balances: bool = True,
) -> list[CustodyAsset]:
    """All custody assets, optionally filtered by type."""
    if asset_type is not None:
        rows = db.fetchall(
            "SELECT * FROM custody_assets WHERE asset_type = ? ORDER BY id",
            (AssetType.parse(asset_type).value,),
        )
    else:
        rows = db.fetchall("SELECT * FROM custody_assets ORDER BY asset_type, id")

    balances = _balances_by_asset(db, [r["id"] for r in rows]) if with_balances else {}
    return [CustodyAsset.from_row(r, balances.get(r["id"], [])) for r in rows]


# ---------------------------------------------------------------------------
# Allocations
# ---------------------------------------------------------------------------

def insert_allocation(db: Database, allocation: Allocation) -> None:
    """Insert a new allocation row (caller commits)."""
    db.execute(
        """INSERT INTO allocations (
            id, client_id, asset_type, asset_id, allocation_type, value,
            start_date, end_date, notes
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            allocation.id, allocation.client_id, allocation.asset_type.value,
            allocation.asset_id, allocation.allocation_type.value, allocation.value,
            allocation.start_date.isoformat(),
            allocation.end_date.isoformat() if allocation.end_date else None,
            allocation.notes,
        ),
    )


def update_allocation_terms(db: Database, allocation: Allocation) -> None:
    """Rewrite type, value, start date and notes of an active allocation (caller commits)."""
    db.execute(
        """UPDATE allocations SET
            allocation_type = ?, value = ?, start_date = ?, notes = ?,
            updated_at = datetime('now')
        WHERE id = ? AND end_date IS NULL""",
        (
            allocation.allocation_type.value, allocation.value,
            allocation.start_date.isoformat(), allocation.notes, allocation.id,
        ),
    )


def set_allocation_end_date(db: Database, allocation_id: str, end_date: date) -> None:
    """Close an allocation (caller commits)."""
    db.execute(
        """UPDATE allocations SET end_date = ?, updated_at = datetime('now')
        WHERE id = ?""",
        (end_date.isoformat(), allocation_id),
    )


def delete_allocation(db: Database, allocation_id: str) -> bool:
    """Hard-delete an allocation (caller commits). Returns True if a row was deleted."""
    cursor = db.execute("DELETE FROM allocations WHERE id = ?", (allocation_id,))
    return cursor.rowcount > 0


def get_allocation(db: Database, allocation_id: str) -> Allocation | None:
    row = db.fetchone("SELECT * FROM allocations WHERE id = ?", (allocation_id,))
    return Allocation.from_row(row) if row else None


def list_allocations(
    db: Database,
    *,
    client_id: str | None = None,
    asset_type: AssetType | str | None = None,
    asset_id: str | None = None,
    active_only: bool = False,
) -> list[Allocation]:
    """Allocation store query, filtered by client and/or asset."""
    clauses: list[str] = []
    params: list[Any] = []
    if client_id is not None:
        clauses.append("client_id = ?")
        params.append(client_id)
    if asset_type is not None:
        clauses.append("asset_type = ?")
        params.append(AssetType.parse(asset_type).value)
    if asset_id is not None:
        clauses.append("asset_id = ?")
        params.append(asset_id)
    if active_only:
        clauses.append("end_date IS NULL")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = db.fetchall(
        f"SELECT * FROM allocations {where} ORDER BY start_date, created_at, id",
        tuple(params),
    )
    return [Allocation.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Portfolio snapshots
# ---------------------------------------------------------------------------

def upsert_snapshot(
    db: Database,
    snapshot_date: date,
    client_id: str | None,
    total_value: float,
    crypto_value: float,
    traditional_value: float,
    calculated_at: datetime | None = None,
) -> None:
    """Write the one snapshot row for (date, client) -- client None = book-wide."""
    calculated = (calculated_at or datetime.now()).isoformat(sep=" ", timespec="seconds")
    with db.transaction():
        db.execute(
            """DELETE FROM portfolio_snapshots
            WHERE snapshot_date = ? AND client_id IS ?""",
            (snapshot_date.isoformat(), client_id),
        )
        db.execute(
            """INSERT INTO portfolio_snapshots (
                snapshot_date, client_id, total_value, crypto_value,
                traditional_value, calculated_at
            ) VALUES (?, ?, ?, ?, ?, ?)""",
            (
                snapshot_date.isoformat(), client_id, round(total_value, 2),
                round(crypto_value, 2), round(traditional_value, 2), calculated,
            ),
        )


def fetch_snapshot_rows(
    db: Database,
    client_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[dict[str, Any]]:
    """Snapshot reader: date-ordered rows for one client, or the book when None."""
    clauses = ["client_id IS ?"]
    params: list[Any] = [client_id]
    if from_date is not None:
        clauses.append("snapshot_date >= ?")
        params.append(from_date.isoformat())
    if to_date is not None:
        clauses.append("snapshot_date <= ?")
        params.append(to_date.isoformat())

    rows = db.fetchall(
        f"""SELECT * FROM portfolio_snapshots
        WHERE {' AND '.join(clauses)}
        ORDER BY snapshot_date ASC""",
        tuple(params),
    )
    return [dict(r) for r in rows]
