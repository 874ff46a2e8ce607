"""Top-level CLI entry point for Custodia."""

from __future__ import annotations

import logging

import click

from custodia import __version__


@click.group()
@click.version_option(version=__version__, prog_name="custodia")
@click.option(
    "--config",
    type=click.Path(),
    default=None,
    envvar="CUSTODIA_CONFIG",
    help="Path to config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Custodia -- allocation and portfolio analytics for custody assets."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# Register sub-commands
from custodia.cli.allocation_cmd import allocation_group  # noqa: E402
from custodia.cli.analytics_cmd import analytics_group  # noqa: E402
from custodia.cli.config_cmd import config_group  # noqa: E402
from custodia.cli.import_cmd import import_group  # noqa: E402
from custodia.cli.portfolio_cmd import portfolio_group  # noqa: E402

cli.add_command(allocation_group, "allocation")
cli.add_command(analytics_group, "analytics")
cli.add_command(config_group, "config")
cli.add_command(import_group, "import")
cli.add_command(portfolio_group, "portfolio")


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize Custodia: create the database and apply migrations."""
    from custodia.cli.common import exit_on_error, load, open_db
    from custodia.config.loader import resolve_path
    from custodia.storage.migrations import verify_schema

    config = load(ctx)
    click.echo(f"  Database: {resolve_path(config.database.path)}")

    with exit_on_error(), open_db(config) as db:
        click.echo(f"  Schema version: {db.schema_version()}")
        missing = verify_schema(db)

    if missing:
        click.echo(f"  Missing schema objects: {', '.join(missing)}", err=True)
        raise SystemExit(1)

    click.echo("\nCustodia initialized successfully.")
    click.echo("Next steps:")
    click.echo("  1. Run: custodia import book book.json   (clients, wallets, accounts)")
    click.echo("  2. Run: custodia allocation create ...   (allocate assets to clients)")
    click.echo("  3. Run: custodia portfolio snapshot      (record today's valuations)")
