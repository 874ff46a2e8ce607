"""Allocation CLI commands: validate, create, update, end, delete, list, conflicts."""

from __future__ import annotations

from datetime import datetime

import click

from custodia.cli.common import DATE, as_date

ASSET_TYPES = click.Choice(["Wallet", "Account"], case_sensitive=False)
ALLOCATION_TYPES = click.Choice(["Percentage", "FixedAmount"], case_sensitive=False)


@click.group("allocation")
def allocation_group() -> None:
    """Allocate custody assets to clients."""
    pass


def _service(db, config):
    from custodia.book.service import AllocationService

    return AllocationService(db, config)


@allocation_group.command("validate")
@click.argument("client_id")
@click.argument("asset_type", type=ASSET_TYPES)
@click.argument("asset_id")
@click.argument("allocation_type", type=ALLOCATION_TYPES)
@click.argument("value", type=float)
@click.option("--start", "start_date", type=DATE, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--exclude", "exclude_id", default=None, help="Allocation id to ignore (for updates)")
@click.pass_context
def allocation_validate(
    ctx: click.Context,
    client_id: str,
    asset_type: str,
    asset_id: str,
    allocation_type: str,
    value: float,
    start_date: datetime | None,
    exclude_id: str | None,
) -> None:
    """Check a proposed allocation without writing it."""
    from custodia.cli.common import echo_json, load, open_db

    config = load(ctx)
    with open_db(config) as db:
        result = _service(db, config).validate(
            client_id, asset_type, asset_id, allocation_type, value,
            as_date(start_date), exclude_allocation_id=exclude_id,
        )
    echo_json(result)
    if not result.valid:
        raise SystemExit(1)


@allocation_group.command("create")
@click.argument("client_id")
@click.argument("asset_type", type=ASSET_TYPES)
@click.argument("asset_id")
@click.argument("allocation_type", type=ALLOCATION_TYPES)
@click.argument("value", type=float)
@click.option("--start", "start_date", type=DATE, default=None, help="Start date (YYYY-MM-DD), default today")
@click.option("--notes", default="", help="Free-form notes")
@click.pass_context
def allocation_create(
    ctx: click.Context,
    client_id: str,
    asset_type: str,
    asset_id: str,
    allocation_type: str,
    value: float,
    start_date: datetime | None,
    notes: str,
) -> None:
    """Allocate part of an asset to a client."""
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        allocation = _service(db, config).create(
            client_id, asset_type, asset_id, allocation_type, value,
            as_date(start_date), notes,
        )
    echo_json(allocation)


@allocation_group.command("update")
@click.argument("allocation_id")
@click.option("--type", "allocation_type", type=ALLOCATION_TYPES, default=None)
@click.option("--value", type=float, default=None)
@click.option("--start", "start_date", type=DATE, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--notes", default=None)
@click.pass_context
def allocation_update(
    ctx: click.Context,
    allocation_id: str,
    allocation_type: str | None,
    value: float | None,
    start_date: datetime | None,
    notes: str | None,
) -> None:
    """Change the terms of an active allocation."""
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        allocation = _service(db, config).update(
            allocation_id,
            allocation_type=allocation_type,
            value=value,
            start_date=as_date(start_date),
            notes=notes,
        )
    echo_json(allocation)


@allocation_group.command("end")
@click.argument("allocation_id")
@click.option("--date", "end_date", type=DATE, default=None, help="End date (YYYY-MM-DD), default today")
@click.pass_context
def allocation_end(ctx: click.Context, allocation_id: str, end_date: datetime | None) -> None:
    """End an active allocation."""
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        allocation = _service(db, config).end(allocation_id, as_date(end_date))
    echo_json(allocation)


@allocation_group.command("delete")
@click.argument("allocation_id")
@click.confirmation_option(prompt="Hard-delete this allocation? Ending it keeps history.")
@click.pass_context
def allocation_delete(ctx: click.Context, allocation_id: str) -> None:
    """Hard-delete an allocation."""
    from custodia.cli.common import exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        _service(db, config).delete(allocation_id)
    click.echo(f"Deleted allocation {allocation_id}")


@allocation_group.command("list")
@click.option("--client", "client_id", default=None, help="Only this client's allocations")
@click.option("--active", is_flag=True, help="Only active allocations")
@click.pass_context
def allocation_list(ctx: click.Context, client_id: str | None, active: bool) -> None:
    """List allocations."""
    from custodia.cli.common import load, open_db
    from custodia.storage.queries import list_allocations

    config = load(ctx)
    with open_db(config) as db:
        allocations = list_allocations(db, client_id=client_id, active_only=active)

    if not allocations:
        click.echo("No allocations found.")
        return

    click.echo(f"{'ID':<38} {'Client':<20} {'Asset':<28} {'Type':<12} {'Value':>12} {'Start':<11} {'End':<11}")
    click.echo("-" * 138)
    for a in allocations:
        asset = f"{a.asset_type.value}:{a.asset_id}"[:27]
        click.echo(
            f"{a.id:<38} {a.client_id[:19]:<20} {asset:<28} {a.allocation_type.value:<12} "
            f"{a.value:>12,.2f} {a.start_date.isoformat():<11} "
            f"{a.end_date.isoformat() if a.end_date else '':<11}"
        )
    click.echo(f"\nTotal: {len(allocations)} allocations")


@allocation_group.command("conflicts")
@click.pass_context
def allocation_conflicts(ctx: click.Context) -> None:
    """Report assets whose active percentage allocations exceed 100%."""
    from custodia.book.conflicts import find_conflicts
    from custodia.cli.common import echo_json, load, open_db

    config = load(ctx)
    with open_db(config) as db:
        conflicts = find_conflicts(db)

    if not conflicts:
        click.echo("No allocation conflicts.")
        return
    echo_json(conflicts)
    raise SystemExit(1)
