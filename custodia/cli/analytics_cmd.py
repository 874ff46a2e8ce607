"""Analytics CLI commands: performance, history, risk."""

from __future__ import annotations

from datetime import datetime

import click

from custodia.cli.common import DATE, as_date


@click.group("analytics")
def analytics_group() -> None:
    """Performance and risk over recorded snapshots."""
    pass


@analytics_group.command("performance")
@click.option("--client", "client_id", default=None, help="Client id; omit for the whole book")
@click.option("--from", "from_date", type=DATE, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--to", "to_date", type=DATE, default=None, help="End date (YYYY-MM-DD)")
@click.option(
    "--granularity",
    type=click.Choice(["daily", "weekly", "monthly"], case_sensitive=False),
    default="daily",
    show_default=True,
)
@click.pass_context
def analytics_performance(
    ctx: click.Context,
    client_id: str | None,
    from_date: datetime | None,
    to_date: datetime | None,
    granularity: str,
) -> None:
    """Returns, best and worst periods, and crypto/traditional attribution."""
    from custodia.analytics.performance import get_performance
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        report = get_performance(
            db, client_id, as_date(from_date), as_date(to_date), granularity, config.analytics,
        )
    echo_json(report)


@analytics_group.command("history")
@click.option("--client", "client_id", default=None, help="Client id; omit for the whole book")
@click.option("--from", "from_date", type=DATE, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--to", "to_date", type=DATE, default=None, help="End date (YYYY-MM-DD)")
@click.pass_context
def analytics_history(
    ctx: click.Context,
    client_id: str | None,
    from_date: datetime | None,
    to_date: datetime | None,
) -> None:
    """Every snapshot in range with daily and cumulative returns."""
    from custodia.analytics.performance import get_historical_performance
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        history = get_historical_performance(
            db, client_id, as_date(from_date), as_date(to_date), config.analytics,
        )
    echo_json(history)


@analytics_group.command("risk")
@click.option("--client", "client_id", default=None, help="Client id; omit for the whole book")
@click.option("--days", type=int, default=None, help="Lookback window in days")
@click.pass_context
def analytics_risk(ctx: click.Context, client_id: str | None, days: int | None) -> None:
    """Volatility, Sharpe/Sortino/Calmar ratios and drawdown."""
    from custodia.analytics.risk import get_risk_metrics
    from custodia.cli.common import echo_json, exit_on_error, load, open_db

    config = load(ctx)
    with open_db(config) as db, exit_on_error():
        report = get_risk_metrics(db, client_id, days, config.analytics)
    echo_json(report)
