"""Change feed: row-level change notifications keyed by table.

Changes carry only the row id and, where known, the parent order id. They
are hints: consumers refetch the row rather than trusting a payload.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum

import structlog

from dispatch.errors import FeedUnavailable

logger = structlog.get_logger(__name__)


class ChangeKind(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RowChange:
    table: str
    kind: ChangeKind
    row_id: str
    parent_order_id: str | None = None


class ChangeFeed(ABC):
    """Abstract interface for change-notification transports."""

    @abstractmethod
    def subscribe(self, subscriber: str, table: str) -> None:
        """Start receiving changes for ``table``. Raises FeedUnavailable."""
        ...

    @abstractmethod
    def publish(self, change: RowChange) -> None: ...

    @abstractmethod
    def poll(self, subscriber: str, limit: int = 100) -> list[RowChange]:
        """Pending changes for the subscriber, oldest first. Raises FeedUnavailable."""
        ...


class InMemoryChangeFeed(ChangeFeed):
    """In-process feed. ``fail()`` simulates a dropped connection."""

    def __init__(self):
        self._queues: dict[str, deque] = {}
        self._tables: dict[str, str] = {}
        self._failure: str | None = None

    def subscribe(self, subscriber: str, table: str) -> None:
        if self._failure:
            raise FeedUnavailable(self._failure)
        self._tables[subscriber] = table
        self._queues.setdefault(subscriber, deque())

    def publish(self, change: RowChange) -> None:
        if self._failure:
            logger.debug("Change dropped, feed is down", table=change.table, row_id=change.row_id)
            return
        for subscriber, table in self._tables.items():
            if table == change.table:
                self._queues[subscriber].append(change)

    def poll(self, subscriber: str, limit: int = 100) -> list[RowChange]:
        if self._failure:
            raise FeedUnavailable(self._failure)
        if subscriber not in self._queues:
            raise FeedUnavailable(f"{subscriber} is not subscribed")
        queue = self._queues[subscriber]
        return [queue.popleft() for _ in range(min(limit, len(queue)))]

    def fail(self, reason: str = "Connection lost") -> None:
        """Drop every subscription; pending changes are lost."""
        self._failure = reason
        self._queues.clear()
        self._tables.clear()

    def recover(self) -> None:
        self._failure = None


_feed_instance = None


def get_change_feed() -> ChangeFeed:
    """Return the process-wide change feed (singleton)."""
    global _feed_instance
    if _feed_instance is None:
        _feed_instance = InMemoryChangeFeed()
    return _feed_instance


def reset_change_feed():
    """Reset the feed singleton (useful for testing)."""
    global _feed_instance
    _feed_instance = None
