"""Shared plumbing for CLI commands: config, database, JSON output, error exit."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any

import click

from custodia.config.schema import CustodiaConfig
from custodia.errors import CustodiaError
from custodia.storage.database import Database

DATE = click.DateTime(formats=["%Y-%m-%d"])


def load(ctx: click.Context) -> CustodiaConfig:
    from custodia.config.loader import load_config

    return load_config(ctx.obj.get("config_path"))


@contextmanager
def open_db(config: CustodiaConfig) -> Iterator[Database]:
    """Open the configured database with the schema applied."""
    from custodia.config.loader import resolve_path
    from custodia.storage.migrations import ensure_schema

    with Database(resolve_path(config.database.path)) as db:
        ensure_schema(db)
        yield db


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Report engine errors on stderr and exit 1."""
    try:
        yield
    except CustodiaError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None


def as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def to_jsonable(obj: Any) -> Any:
    """Convert report dataclasses to plain data.

    Computed values a dataclass names in ``derived_fields`` are written
    next to its stored fields, at any nesting depth.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        for name in getattr(obj, "derived_fields", ()):
            data[name] = to_jsonable(getattr(obj, name))
        return data
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(o) for o in obj]
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    return obj


def echo_json(obj: Any) -> None:
    click.echo(json.dumps(to_jsonable(obj), indent=2, default=str))
