"""Daily valuation snapshots: capture and read back.

One row per (date, client), plus one book-wide row per date with
``client_id`` None. The book-wide row is the sum of the client rows
captured with it. Capturing the same date twice replaces the rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from custodia.errors import CustodiaError
from custodia.portfolio.valuation import ClientPortfolio, get_client_portfolio

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSnapshot:
    snapshot_date: date
    client_id: str | None
    total_value: float
    crypto_value: float = 0.0
    traditional_value: float = 0.0
    calculated_at: datetime | None = None

    @property
    def is_book_wide(self) -> bool:
        return self.client_id is None

    @classmethod
    def from_row(cls, row: Any) -> "PortfolioSnapshot":
        calculated = row["calculated_at"]
        return cls(
            snapshot_date=date.fromisoformat(row["snapshot_date"]),
            client_id=row["client_id"],
            total_value=float(row["total_value"] or 0.0),
            crypto_value=float(row["crypto_value"] or 0.0),
            traditional_value=float(row["traditional_value"] or 0.0),
            calculated_at=datetime.fromisoformat(calculated) if calculated else None,
        )


def build_client_snapshot(portfolio: ClientPortfolio, snapshot_date: date) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        snapshot_date=snapshot_date,
        client_id=portfolio.client_id,
        total_value=portfolio.total_value,
        crypto_value=portfolio.crypto_value,
        traditional_value=portfolio.traditional_value,
        calculated_at=portfolio.calculated_at,
    )


def build_book_snapshot(portfolios: Iterable[ClientPortfolio], snapshot_date: date) -> PortfolioSnapshot:
    """Sum client portfolios into one book-wide snapshot."""
    crypto = traditional = 0.0
    for p in portfolios:
        crypto += p.crypto_value
        traditional += p.traditional_value
    return PortfolioSnapshot(
        snapshot_date=snapshot_date,
        client_id=None,
        total_value=crypto + traditional,
        crypto_value=crypto,
        traditional_value=traditional,
        calculated_at=datetime.now(),
    )


def capture_snapshots(db: Any, snapshot_date: date | None = None) -> list[PortfolioSnapshot]:
    """Value every active client and store the day's snapshots.

    Parameters:
        db: Open Database.
        snapshot_date: Day to record. Defaults to today.

    Returns:
        The client snapshots followed by the book-wide snapshot.
    """
    from custodia.book.assets import ClientStatus
    from custodia.storage import queries

    snapshot_date = snapshot_date or date.today()
    portfolios: list[ClientPortfolio] = []
    for client in queries.list_clients(db, status=ClientStatus.ACTIVE):
        try:
            portfolios.append(get_client_portfolio(db, client.id))
        except CustodiaError as e:
            logger.warning("Skipping snapshot for client %s: %s", client.id, e)

    snapshots = [build_client_snapshot(p, snapshot_date) for p in portfolios]
    snapshots.append(build_book_snapshot(portfolios, snapshot_date))

    for s in snapshots:
        queries.upsert_snapshot(
            db, s.snapshot_date, s.client_id, s.total_value,
            s.crypto_value, s.traditional_value, s.calculated_at,
        )

    logger.info(
        "Captured %d client snapshot(s) for %s, book value %.2f",
        len(portfolios), snapshot_date.isoformat(), snapshots[-1].total_value,
    )
    return snapshots


def load_snapshots(
    db: Any,
    client_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[PortfolioSnapshot]:
    """Date-ordered snapshots for one client, or the book when *client_id* is None."""
    from custodia.storage import queries

    rows = queries.fetch_snapshot_rows(db, client_id, from_date, to_date)
    return [PortfolioSnapshot.from_row(r) for r in rows]
