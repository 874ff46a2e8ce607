"""SQLite-backed collaborators: database handle, migrations, named queries."""

from custodia.storage.database import Database
from custodia.storage.migrations import ensure_schema

__all__ = ["Database", "ensure_schema"]
