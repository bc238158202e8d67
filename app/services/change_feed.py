"""In-process publish/subscribe channel for record store change notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable
from uuid import uuid4

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class ChangeEvent:
    table_name: str
    action: str
    record_ids: tuple[str, ...] = ()
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_payload(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "action": self.action,
            "record_ids": list(self.record_ids),
            "occurred_at": self.occurred_at.isoformat(),
        }


ChangeHandler = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", key: str, table_name: str) -> None:
        self._feed = feed
        self._key = key
        self.table_name = table_name
        self.active = True

    def close(self) -> None:
        if self.active:
            self._feed._remove(self._key)
            self.active = False


class ChangeFeed:
    """Deliver change events to subscribers keyed by table name or ``*``."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._handlers: dict[str, tuple[str, ChangeHandler]] = {}

    def subscribe(self, table_name: str, handler: ChangeHandler) -> Subscription:
        key = uuid4().hex
        with self._lock:
            self._handlers[key] = (table_name, handler)
        logger.debug("changes:subscribe table=%s key=%s", table_name, key)
        return Subscription(self, key, table_name)

    def _remove(self, key: str) -> None:
        with self._lock:
            entry = self._handlers.pop(key, None)
        if entry is not None:
            logger.debug("changes:unsubscribe table=%s key=%s", entry[0], key)

    def subscriber_count(self, table_name: str | None = None) -> int:
        with self._lock:
            if table_name is None:
                return len(self._handlers)
            return sum(1 for name, _ in self._handlers.values() if name == table_name)

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = [
                handler
                for name, handler in self._handlers.values()
                if name == event.table_name or name == WILDCARD
            ]

        delivered = 0
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "changes:handler-failed table=%s action=%s", event.table_name, event.action
                )
                continue
            delivered += 1
        return delivered


_change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return _change_feed


__all__ = ["WILDCARD", "ChangeEvent", "ChangeFeed", "Subscription", "get_change_feed"]
