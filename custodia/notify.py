"""Fire-and-forget notification of portfolio-affecting writes.

Listeners are plain callables taking a :class:`PortfolioEvent`. Delivery is
best effort: a listener that raises is logged and skipped, and the write
that triggered the event is never affected.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    ALLOCATION_CREATED = "allocation_created"
    ALLOCATION_UPDATED = "allocation_updated"
    ALLOCATION_ENDED = "allocation_ended"
    ALLOCATION_DELETED = "allocation_deleted"
    SNAPSHOTS_CAPTURED = "snapshots_captured"


@dataclass
class PortfolioEvent:
    kind: EventKind
    client_id: str | None = None
    allocation_id: str | None = None
    occurred_at: datetime = field(default_factory=datetime.now)


Listener = Callable[[PortfolioEvent], None]


class Notifier:
    """Registry of listeners informed after successful writes."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: PortfolioEvent) -> int:
        """Deliver *event* to every listener. Returns the number that succeeded."""
        with self._lock:
            listeners = list(self._listeners)

        delivered = 0
        for listener in listeners:
            try:
                listener(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "Notifier listener %r failed for %s", listener, event.kind.value,
                    exc_info=True,
                )
        return delivered

    def __len__(self) -> int:
        return len(self._listeners)
