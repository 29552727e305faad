"""Per-table change notifications for live readers.

Repositories mark the tables a unit of work touches; subscribers hear about
them only once the surrounding transaction has committed, so a reader that
refreshes on notification always sees a sale together with its full set of
lines. Rolled back work publishes nothing.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TRACKED_TABLES = ("products", "sales", "sale_lines", "register_settings")

ChangeCallback = Callable[[str, int], None]

_SESSION_KEY = "changed_tables"


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._versions: dict[str, int] = {table: 0 for table in TRACKED_TABLES}
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return unsubscribe

    def version(self, table: str) -> int:
        with self._lock:
            return self._versions.get(table, 0)

    def versions(self) -> dict[str, int]:
        with self._lock:
            return dict(self._versions)

    def publish(self, tables: Iterable[str]) -> None:
        notifications = []
        with self._lock:
            for table in tables:
                self._versions[table] = self._versions.get(table, 0) + 1
                for callback in list(self._subscribers[table]):
                    notifications.append((callback, table, self._versions[table]))
        for callback, table, version in notifications:
            try:
                callback(table, version)
            except Exception:
                logger.exception("Change subscriber failed", extra={"table": table, "version": version})


change_feed = ChangeFeed()


def mark_changed(db: Session, *tables: str) -> None:
    db.info.setdefault(_SESSION_KEY, set()).update(tables)


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session: Session) -> None:
    tables = session.info.pop(_SESSION_KEY, None)
    if tables:
        change_feed.publish(sorted(tables))


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    session.info.pop(_SESSION_KEY, None)
