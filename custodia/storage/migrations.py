"""Schema migrations for the custody book.

Migration scripts live in ``custodia/migrations/`` as ``NNN_description.sql``
and must be numbered 001, 002, ... without gaps. Each script records its own
number in ``_schema_version``; the runner refuses to continue if one does
not, since a half-recorded schema would be re-applied on the next start.

The allocation rules are enforced twice: by the write path and by schema
objects (cap triggers, the one-active-allocation index, the write-once end
date). :func:`verify_schema` reports which of those guards are missing.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import NamedTuple

from custodia.errors import SchemaError
from custodia.storage.database import Database

logger = logging.getLogger(__name__)

MIGRATION_DIR = Path(__file__).parent.parent / "migrations"
_FILENAME = re.compile(r"^(\d{3})_(\w+)\.sql$")

REQUIRED_TABLES = (
    "clients",
    "custody_assets",
    "asset_balances",
    "allocations",
    "portfolio_snapshots",
)

ALLOCATION_GUARDS = (
    ("trigger", "trg_allocations_pct_cap_insert"),
    ("trigger", "trg_allocations_pct_cap_update"),
    ("trigger", "trg_allocations_end_date_immutable"),
    ("index", "ux_allocations_active"),
)


class Migration(NamedTuple):
    version: int
    name: str
    sql: str


def discover_migrations(directory: Path = MIGRATION_DIR) -> list[Migration]:
    """Load migration scripts in version order.

    Raises:
        SchemaError: two scripts share a number, or the sequence has a gap.
    """
    if not directory.exists():
        raise SchemaError(f"Migration directory not found: {directory}")

    found: dict[int, Migration] = {}
    for sql_file in sorted(directory.glob("*.sql")):
        match = _FILENAME.match(sql_file.name)
        if not match:
            logger.warning("Ignoring %s: not named NNN_description.sql", sql_file.name)
            continue
        version = int(match.group(1))
        if version in found:
            raise SchemaError(
                f"Duplicate migration number {version:03d}: "
                f"{found[version].name} and {sql_file.name}"
            )
        found[version] = Migration(version, sql_file.name, sql_file.read_text())

    expected = list(range(1, len(found) + 1))
    if sorted(found) != expected:
        raise SchemaError(f"Migration numbers must run 001..{len(found):03d} without gaps")
    return [found[v] for v in expected]


def apply_migrations(db: Database, directory: Path = MIGRATION_DIR) -> int:
    """Apply pending migrations under the database write lock.

    Returns:
        The schema version after the run.
    """
    pending = [m for m in discover_migrations(directory) if m.version > db.schema_version()]
    if not pending:
        logger.debug("Schema up to date (version %d)", db.schema_version())
        return db.schema_version()

    with db.transaction():
        for migration in pending:
            logger.info("Applying migration %s", migration.name)
            db.executescript(migration.sql)
            recorded = db.schema_version()
            if recorded != migration.version:
                raise SchemaError(
                    f"Migration {migration.name} left schema at version {recorded}; "
                    f"it must insert {migration.version} into _schema_version"
                )

    current = db.schema_version()
    logger.info("Applied %d migration(s). Schema version: %d", len(pending), current)
    return current


def verify_schema(db: Database) -> list[str]:
    """Names of required tables and allocation guards absent from *db*."""
    rows = db.fetchall("SELECT type, name FROM sqlite_master")
    present = {(r["type"], r["name"]) for r in rows}
    required = [("table", t) for t in REQUIRED_TABLES] + list(ALLOCATION_GUARDS)
    return [name for kind, name in required if (kind, name) not in present]


def ensure_schema(db: Database) -> int:
    """Bring *db* up to date and warn about any missing allocation guard."""
    version = apply_migrations(db)
    missing = verify_schema(db)
    if missing:
        logger.warning("Schema is missing: %s", ", ".join(missing))
    return version
