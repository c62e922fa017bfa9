"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

from taskfeed.errors import InvalidInputError
from taskfeed.validation import sanitize_actor

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask, IncidentPost, Notifier
    from taskfeed.templates import TemplateRegistry
    from taskfeed.types.core import ProjectConfig
    from taskfeed.types.events import EventRecord

PostStatus = Literal["pending", "in_progress", "completed"]
TaskStatus = Literal["pending", "in_progress", "completed", "signed_off"]
HoldStatus = Literal["none", "active", "reinstated", "cleared"]
Priority = Literal["low", "medium", "high", "critical", "emergency"]

VALID_PRIORITIES: frozenset[str] = frozenset({"low", "medium", "high", "critical", "emergency"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _require_actor(actor: object) -> str:
    """Sanitized actor name, or InvalidInputError."""
    cleaned, err = sanitize_actor(actor)
    if err:
        raise InvalidInputError(err)
    return cleaned


def _is_missing_table(exc: sqlite3.OperationalError) -> bool:
    """True when the store lacks a table (a deployment that never had the module)."""
    return "no such table" in str(exc)


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_post(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by TaskFeedDB at composition time.
    """

    db_path: Path
    prefix: str
    config: ProjectConfig
    notifier: Notifier | None
    _conn: sqlite3.Connection | None
    _template_registry: TemplateRegistry | None
    _pending_events: list[EventRecord]

    @property
    def conn(self) -> sqlite3.Connection: ...

    @property
    def templates(self) -> TemplateRegistry: ...

    def _generate_unique_id(self, table: str, infix: str = "") -> str: ...

    def _write_transaction(self, op: str, *, post_id: str | None = None) -> AbstractContextManager[None]: ...

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
    ) -> None: ...

    def get_post(self, post_id: str) -> IncidentPost: ...

    def get_task(self, task_id: str) -> DepartmentTask: ...

    def _list_tasks(self, post_id: str) -> list[DepartmentTask]: ...

