"""Portfolio CLI commands: client, consolidated, composition, overview, drift, snapshot."""

from __future__ import annotations

from datetime import datetime

import click

from custodia.cli.common import DATE, as_date


@click.group("portfolio")
def portfolio_group() -> None:
    """Value client portfolios and the book."""
    pass


@portfolio_group.command("client")
@click.argument("client_id")
@click.pass_context
def portfolio_client(ctx: click.Context, client_id: str) -> None:
    """Value one client's active allocations."""
    from custodia.cli.common import echo_json, exit_on_error, load, open_db
    from custodia.portfolio.valuation import get_client_portfolio

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        portfolio = get_client_portfolio(db, client_id)
    echo_json(portfolio)


@portfolio_group.command("consolidated")
@click.option("--class", "asset_class", type=click.Choice(["Crypto", "Traditional"]), default=None)
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=50, show_default=True)
@click.pass_context
def portfolio_consolidated(
    ctx: click.Context, asset_class: str | None, page: int, page_size: int,
) -> None:
    """Every custody asset with the clients holding a share of it."""
    from custodia.cli.common import echo_json, load, open_db
    from custodia.portfolio.valuation import get_consolidated_portfolio

    config = load(ctx)
    with open_db(config) as db:
        view = get_consolidated_portfolio(
            db, config.fx, asset_class=asset_class, page=page, page_size=page_size,
        )
    echo_json(view)


@portfolio_group.command("composition")
@click.pass_context
def portfolio_composition(ctx: click.Context) -> None:
    """Book value by chain, currency and asset class, with concentration."""
    from custodia.cli.common import echo_json, load, open_db
    from custodia.portfolio.composition import get_composition

    config = load(ctx)
    with open_db(config) as db:
        composition = get_composition(db, config.fx)
    echo_json(composition)


@portfolio_group.command("overview")
@click.pass_context
def portfolio_overview_cmd(ctx: click.Context) -> None:
    """Assets under management, headcounts, top holdings and recent change."""
    from custodia.cli.common import echo_json, load, open_db
    from custodia.portfolio.overview import get_portfolio_overview

    config = load(ctx)
    with open_db(config) as db:
        overview = get_portfolio_overview(db, config.fx)
    echo_json(overview)


@portfolio_group.command("drift")
@click.option("--threshold", type=float, default=None, help="Drift %% that triggers a recommendation")
@click.pass_context
def portfolio_drift(ctx: click.Context, threshold: float | None) -> None:
    """How far each active allocation sits from its target."""
    from custodia.cli.common import echo_json, load, open_db
    from custodia.portfolio.drift import get_allocation_drift

    config = load(ctx)
    with open_db(config) as db:
        report = get_allocation_drift(db, config.fx, config.analytics, threshold)
    echo_json(report)


@portfolio_group.command("snapshot")
@click.option("--date", "snapshot_date", type=DATE, default=None, help="Snapshot date, default today")
@click.pass_context
def portfolio_snapshot(ctx: click.Context, snapshot_date: datetime | None) -> None:
    """Record today's valuation of every active client and the book."""
    from custodia.cli.common import load, open_db
    from custodia.portfolio.snapshots import capture_snapshots

    config = load(ctx)
    with open_db(config) as db:
        snapshots = capture_snapshots(db, as_date(snapshot_date))

    book = snapshots[-1]
    click.echo(f"Captured {len(snapshots) - 1} client snapshot(s) for {book.snapshot_date}")
    click.echo(f"  Book value:  ${book.total_value:,.2f}")
    click.echo(f"  Crypto:      ${book.crypto_value:,.2f}")
    click.echo(f"  Traditional: ${book.traditional_value:,.2f}")
