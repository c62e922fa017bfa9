"""TypedDicts for db_events.py return types."""

from __future__ import annotations

from typing import TypedDict

from taskfeed.types.core import ISOTimestamp


class EventRecord(TypedDict):
    """Row from the events table (SELECT * FROM events).

    The same shape is handed to the notifier after commit.
    """

    id: int
    post_id: str
    task_id: str | None
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    comment: str
    created_at: ISOTimestamp
