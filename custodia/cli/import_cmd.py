"""CLI command: custodia import -- load clients, custody assets and snapshots."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime

import click

logger = logging.getLogger(__name__)


@click.group("import")
@click.pass_context
def import_group(ctx: click.Context) -> None:
    """Import book data into the Custodia database."""
    pass


@import_group.command("book")
@click.argument("path", type=click.Path(exists=True))
@click.pass_context
def import_book(ctx: click.Context, path: str) -> None:
    """Import clients and custody assets with their balances.

    PATH: JSON file with "clients" and "assets" lists. Each asset carries
    its "balances"; an asset's existing balances are replaced.
    """
    from custodia.book.assets import AssetBalance
    from custodia.cli.common import load, open_db
    from custodia.storage.queries import replace_balances, upsert_asset, upsert_client

    config = load(ctx)
    with open(path) as f:
        book = json.load(f)

    clients = book.get("clients", [])
    assets = book.get("assets", [])
    n_balances = 0

    with open_db(config) as db:
        for c in clients:
            upsert_client(
                db,
                id=c["id"],
                name=c["name"],
                email=c.get("email", ""),
                status=c.get("status", "Active"),
                notes=c.get("notes"),
            )

        for a in assets:
            upsert_asset(
                db,
                id=a["id"],
                asset_type=a["asset_type"],
                identifier=a.get("identifier", ""),
                label=a.get("label"),
            )
            balances = [
                AssetBalance(
                    asset_id=a["id"],
                    chain_or_currency=b["chain_or_currency"],
                    symbol=b.get("symbol", ""),
                    amount=float(b.get("amount", 0.0)),
                    amount_usd=b.get("amount_usd"),
                    balance_type=b.get("balance_type"),
                    last_updated=(
                        datetime.fromisoformat(b["last_updated"]) if b.get("last_updated") else None
                    ),
                )
                for b in a.get("balances", [])
            ]
            n_balances += replace_balances(db, a["id"], balances)

    click.echo(f"Imported {len(clients)} clients, {len(assets)} assets, {n_balances} balances from {path}")


@import_group.command("snapshots")
@click.argument("path", type=click.Path(exists=True))
@click.pass_context
def import_snapshots(ctx: click.Context, path: str) -> None:
    """Import historical valuation snapshots.

    PATH: JSON list of {snapshot_date, client_id (null for book-wide),
    total_value, crypto_value, traditional_value}.
    """
    from custodia.cli.common import load, open_db
    from custodia.storage.queries import upsert_snapshot

    config = load(ctx)
    with open(path) as f:
        rows = json.load(f)

    count = 0
    with open_db(config) as db:
        for r in rows:
            try:
                upsert_snapshot(
                    db,
                    snapshot_date=date.fromisoformat(r["snapshot_date"]),
                    client_id=r.get("client_id"),
                    total_value=float(r["total_value"]),
                    crypto_value=float(r.get("crypto_value", 0.0)),
                    traditional_value=float(r.get("traditional_value", 0.0)),
                )
                count += 1
            except (KeyError, ValueError) as e:
                logger.warning("Skipping snapshot row %r: %s", r, e)

    click.echo(f"Imported {count} snapshots from {path}")
