"""Exception hierarchy shared by the allocation rules and the analyzers.

Every error carries a human-readable message only; callers map the
category (not found, rule violation, insufficient data) onto whatever
status their transport uses.
"""

from __future__ import annotations


class CustodiaError(Exception):
    """Base class for all recoverable engine errors."""


class NotFoundError(CustodiaError):
    """A referenced client, asset or allocation does not exist."""


class BusinessRuleError(CustodiaError):
    """A write would violate a book invariant."""


class AllocationRuleError(BusinessRuleError):
    """Allocation-specific rule violation (100% cap, duplicates, end dates)."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class InsufficientDataError(CustodiaError):
    """Not enough snapshots to compute the requested statistics."""


class SchemaError(CustodiaError):
    """The migration scripts or the database schema are inconsistent."""
