"""Config CLI commands: show, validate."""

from __future__ import annotations

import click


@click.group("config")
def config_group() -> None:
    """Manage configuration."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the resolved configuration."""
    from custodia.cli.common import echo_json, load

    echo_json(load(ctx).model_dump())


@config_group.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate config.yaml against the schema."""
    from custodia.config.loader import load_config

    try:
        config = load_config(ctx.obj.get("config_path"))
        click.echo("Config is valid.")
        click.echo(f"  Version: {config.version}")
        click.echo(f"  Database: {config.database.path}")
        click.echo(f"  Allocation cap: {config.allocation.max_total_pct:g}% "
                   f"(warn above {config.allocation.warning_threshold_pct:g}%)")
        click.echo(f"  FX rates: {', '.join(sorted(config.fx.rates))}")
        click.echo(f"  Risk-free rate: {config.analytics.risk_free_rate:g}")
    except Exception as e:
        click.echo(f"Config validation failed: {e}", err=True)
        raise SystemExit(1) from None
