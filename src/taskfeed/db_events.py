"""EventsMixin — event outbox recording, readback, and notifier dispatch.

All methods access ``self.conn``, ``self.get_post()``, etc. via Python's MRO
when composed into ``TaskFeedDB``.
"""

from __future__ import annotations

import logging
from typing import cast

from taskfeed.db_base import DBMixinProtocol, _now_iso
from taskfeed.types.core import ISOTimestamp
from taskfeed.types.events import EventRecord

logger = logging.getLogger(__name__)


class EventsMixin(DBMixinProtocol):
    """Event recording and delivery.

    Every mutation writes its events in the same transaction as the state
    change; ``TaskFeedDB._write_transaction`` hands them to the notifier once
    the commit has succeeded.
    """

    # -- Events (private) ----------------------------------------------------

    def _record_event(
        self,
        post_id: str,
        event_type: str,
        *,
        actor: str = "",
        task_id: str | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
        comment: str = "",
    ) -> None:
        now = _now_iso()
        cursor = self.conn.execute(
            "INSERT INTO events (post_id, task_id, event_type, actor, old_value, new_value, comment, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (post_id, task_id, event_type, actor, old_value, new_value, comment, now),
        )
        self._pending_events.append(
            EventRecord(
                id=cursor.lastrowid or 0,
                post_id=post_id,
                task_id=task_id,
                event_type=event_type,
                actor=actor,
                old_value=old_value,
                new_value=new_value,
                comment=comment,
                created_at=ISOTimestamp(now),
            )
        )

    def _dispatch_events(self, events: list[EventRecord]) -> None:
        """Hand committed events to the notifier. Failures never reach the caller."""
        if not events or self.notifier is None:
            return
        try:
            self.notifier(list(events))
        except Exception:
            logger.warning(
                "Notifier failed for %d event(s) on post %s",
                len(events),
                events[0]["post_id"],
                exc_info=True,
                extra={"op": "notify", "post_id": events[0]["post_id"]},
            )

    # -- Events (public) -----------------------------------------------------

    def get_post_events(self, post_id: str, *, limit: int = 100) -> list[EventRecord]:
        """Get events for a post, oldest first."""
        self.get_post(post_id)  # raises NotFoundError if not found
        rows = self.conn.execute(
            "SELECT * FROM events WHERE post_id = ? ORDER BY id ASC LIMIT ?",
            (post_id, limit),
        ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])
