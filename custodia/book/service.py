"""Allocation write path: create, update, end and delete.

Each write reads the asset's allocations, validates the change and writes
it as one unit. Two things keep concurrent writers from validating against
a stale total:

  - an in-process lock per (asset_type, asset_id), so threads writing the
    same asset queue up instead of racing;
  - a ``BEGIN IMMEDIATE`` transaction around the read-validate-write, so
    other processes sharing the database file are serialised by SQLite.

The schema's triggers and unique index back both up; if one of them fires
anyway the write is rolled back and reported as an AllocationRuleError.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date

from custodia.book.allocations import (
    Allocation,
    AllocationCandidate,
    AllocationType,
    AllocationValidation,
    validate_allocation,
)
from custodia.book.assets import AssetKey, AssetType
from custodia.config.schema import CustodiaConfig
from custodia.errors import AllocationRuleError, NotFoundError
from custodia.notify import EventKind, Notifier, PortfolioEvent
from custodia.storage import queries
from custodia.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


_asset_locks: dict[AssetKey, _LockEntry] = {}
_asset_locks_guard = threading.Lock()


@contextmanager
def _asset_lock(asset_type: AssetType, asset_id: str) -> Iterator[None]:
    """Hold the process-wide lock for one custody asset.

    An entry lives only while some writer holds or waits on it, so the
    table stays as small as the number of assets being written right now.
    """
    key = (asset_type, asset_id)
    with _asset_locks_guard:
        entry = _asset_locks.setdefault(key, _LockEntry())
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _asset_locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _asset_locks[key]


def _today() -> date:
    return date.today()


class AllocationService:
    """Validated, serialised writes against the allocation store.

    Parameters:
        db: Open Database with the schema applied.
        config: Rules and thresholds. Defaults to the built-in config.
        notifier: Informed after every successful write. Optional.
    """

    def __init__(
        self,
        db: Database,
        config: CustodiaConfig | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.db = db
        self.config = config or CustodiaConfig()
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, allocation_id: str) -> Allocation:
        allocation = queries.get_allocation(self.db, allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation not found")
        return allocation

    def list_for_client(self, client_id: str, active_only: bool = False) -> list[Allocation]:
        return queries.list_allocations(self.db, client_id=client_id, active_only=active_only)

    def validate(
        self,
        client_id: str,
        asset_type: AssetType | str,
        asset_id: str,
        allocation_type: AllocationType | str,
        value: float,
        start_date: date | None = None,
        exclude_allocation_id: str | None = None,
    ) -> AllocationValidation:
        """Dry-run validation of a proposed allocation. Nothing is written."""
        candidate = AllocationCandidate(
            client_id=client_id,
            asset_type=AssetType.parse(asset_type),
            asset_id=asset_id,
            allocation_type=AllocationType.parse(allocation_type),
            value=float(value),
            start_date=start_date or _today(),
            exclude_allocation_id=exclude_allocation_id,
        )
        return self._check(candidate)

    def _check(self, candidate: AllocationCandidate) -> AllocationValidation:
        return validate_allocation(
            candidate,
            client=queries.get_client(self.db, candidate.client_id),
            asset=queries.get_asset(self.db, candidate.asset_id, candidate.asset_type),
            existing=queries.list_allocations(
                self.db, asset_type=candidate.asset_type, asset_id=candidate.asset_id,
            ),
            config=self.config.allocation,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        client_id: str,
        asset_type: AssetType | str,
        asset_id: str,
        allocation_type: AllocationType | str,
        value: float,
        start_date: date | None = None,
        notes: str = "",
    ) -> Allocation:
        """Allocate part of a custody asset to an active client."""
        asset_type = AssetType.parse(asset_type)
        candidate = AllocationCandidate(
            client_id=client_id,
            asset_type=asset_type,
            asset_id=asset_id,
            allocation_type=AllocationType.parse(allocation_type),
            value=float(value),
            start_date=start_date or _today(),
        )

        with _asset_lock(asset_type, asset_id), self._write():
            client = queries.get_client(self.db, client_id)
            if client is None or not client.is_active:
                raise NotFoundError("Client not found or inactive")
            if queries.get_asset(self.db, asset_id, asset_type) is None:
                raise NotFoundError(asset_type.not_found_message)

            result = self._check(candidate)
            result.raise_for_errors()
            self._log_warnings(result, client_id, asset_id)

            allocation = Allocation(
                id=str(uuid.uuid4()),
                client_id=client_id,
                asset_type=asset_type,
                asset_id=asset_id,
                allocation_type=candidate.allocation_type,
                value=candidate.value,
                start_date=candidate.start_date,
                notes=notes or "",
            )
            queries.insert_allocation(self.db, allocation)

        logger.info(
            "Created %s allocation %s of %s %s for client %s",
            allocation.allocation_type.value, allocation.id, asset_type.value,
            asset_id, client_id,
        )
        self._notify(EventKind.ALLOCATION_CREATED, allocation)
        return self.get(allocation.id)

    def update(
        self,
        allocation_id: str,
        *,
        allocation_type: AllocationType | str | None = None,
        value: float | None = None,
        start_date: date | None = None,
        notes: str | None = None,
    ) -> Allocation:
        """Change the terms of an active allocation. Omitted fields are kept."""
        current = self.get(allocation_id)

        with _asset_lock(current.asset_type, current.asset_id), self._write():
            # Re-read under the lock; it may have been ended meanwhile.
            current = self.get(allocation_id)
            if not current.is_active:
                raise AllocationRuleError(
                    "Cannot update ended allocations. Create a new allocation instead."
                )

            updated = Allocation(
                id=current.id,
                client_id=current.client_id,
                asset_type=current.asset_type,
                asset_id=current.asset_id,
                allocation_type=(
                    AllocationType.parse(allocation_type)
                    if allocation_type is not None else current.allocation_type
                ),
                value=float(value) if value is not None else current.value,
                start_date=start_date or current.start_date,
                notes=notes if notes is not None else current.notes,
            )
            result = self._check(AllocationCandidate(
                client_id=updated.client_id,
                asset_type=updated.asset_type,
                asset_id=updated.asset_id,
                allocation_type=updated.allocation_type,
                value=updated.value,
                start_date=updated.start_date,
                exclude_allocation_id=updated.id,
            ))
            result.raise_for_errors()
            self._log_warnings(result, updated.client_id, updated.asset_id)
            queries.update_allocation_terms(self.db, updated)

        logger.info("Updated allocation %s for client %s", updated.id, updated.client_id)
        self._notify(EventKind.ALLOCATION_UPDATED, updated)
        return self.get(allocation_id)

    def end(self, allocation_id: str, end_date: date | None = None) -> Allocation:
        """Close an active allocation on *end_date* (default today)."""
        current = self.get(allocation_id)
        end_date = end_date or _today()

        with _asset_lock(current.asset_type, current.asset_id), self._write():
            current = self.get(allocation_id)
            if not current.is_active:
                raise AllocationRuleError("Allocation is already ended")
            if end_date < current.start_date:
                raise AllocationRuleError("End date cannot be before start date")
            if end_date > _today():
                raise AllocationRuleError("End date cannot be in the future")
            queries.set_allocation_end_date(self.db, allocation_id, end_date)

        logger.info(
            "Ended allocation %s for client %s on %s",
            allocation_id, current.client_id, end_date.isoformat(),
        )
        self._notify(EventKind.ALLOCATION_ENDED, current)
        return self.get(allocation_id)

    def delete(self, allocation_id: str) -> None:
        """Hard-delete an allocation. Prefer :meth:`end`, which keeps history."""
        current = self.get(allocation_id)

        with _asset_lock(current.asset_type, current.asset_id), self._write():
            logger.warning(
                "Hard deleting allocation %s for client %s; consider ending it instead",
                allocation_id, current.client_id,
            )
            if not queries.delete_allocation(self.db, allocation_id):
                raise NotFoundError("Allocation not found")

        logger.info("Deleted allocation %s for client %s", allocation_id, current.client_id)
        self._notify(EventKind.ALLOCATION_DELETED, current)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _write(self) -> Iterator[None]:
        """`BEGIN IMMEDIATE` transaction that reports schema rule hits as AllocationRuleError."""
        try:
            with self.db.transaction(immediate=True):
                yield
        except sqlite3.IntegrityError as err:
            raise AllocationRuleError(str(err)) from err

    def _log_warnings(self, result: AllocationValidation, client_id: str, asset_id: str) -> None:
        for warning in result.warnings:
            logger.warning("Allocation for client %s on %s: %s", client_id, asset_id, warning)

    def _notify(self, kind: EventKind, allocation: Allocation) -> None:
        if self.notifier is None:
            return
        event = PortfolioEvent(
            kind=kind, client_id=allocation.client_id, allocation_id=allocation.id,
        )
        try:
            self.notifier.publish(event)
        except Exception:
            logger.warning("Failed to publish %s for allocation %s", kind.value, allocation.id,
                           exc_info=True)

