"""Detail read path -- canonical posts first, then legacy task verifications.

Incidents recorded before the multi-department engine existed live in the
``task_verifications`` table as a single record. ``DetailReader`` tries each
``DetailSource`` in order and returns the first hit, so callers see one shape
regardless of where the incident was stored. ``LegacyDetailSource`` is
self-contained and can be dropped once the legacy table is retired.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Protocol, cast

from taskfeed.aggregate import aggregate
from taskfeed.db_base import _is_missing_table
from taskfeed.errors import NotFoundError
from taskfeed.hold import next_hold_status
from taskfeed.templates_data import department_name
from taskfeed.types.api import IncidentDetailDict

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask, IncidentPost, WorkOrder
    from taskfeed.db_base import DBMixinProtocol, HoldStatus

logger = logging.getLogger(__name__)

SourceName = Literal["canonical", "legacy"]

LEGACY_TEMPLATE_ID = "task_verification"


@dataclass
class IncidentDetail:
    post: IncidentPost
    tasks: list[DepartmentTask]
    work_orders: list[WorkOrder]
    source: SourceName

    def to_dict(self) -> IncidentDetailDict:
        return cast(
            IncidentDetailDict,
            {
                "source": self.source,
                "post": self.post.to_dict(),
                "department_tasks": [t.to_dict() for t in self.tasks],
                "linked_work_orders": [w.to_dict() for w in self.work_orders],
            },
        )


class DetailSource(Protocol):
    name: SourceName

    def fetch(self, post_id: str) -> tuple[IncidentPost, list[DepartmentTask]]:
        """Return the post and its tasks, or raise NotFoundError."""
        ...


class CanonicalDetailSource:
    """Posts written by the engine. Counters and hold state are recomputed, never written back."""

    name: SourceName = "canonical"

    def __init__(self, db: DBMixinProtocol) -> None:
        self._db = db

    def fetch(self, post_id: str) -> tuple[IncidentPost, list[DepartmentTask]]:
        post = self._db.get_post(post_id)
        tasks = self._db._list_tasks(post_id)
        agg = aggregate(tasks, len(tasks))
        # A cleared hold with open tasks can only follow an unrecorded escalation.
        hold = next_hold_status(
            cast("HoldStatus", post.hold_status),
            is_production_hold=bool(post.template_snapshot.get("is_production_hold", False)),
            all_resolved=agg.all_resolved,
            escalated=True,
        )
        stored = (post.total_departments, post.completed_departments, post.status, post.hold_status)
        derived = (len(tasks), agg.completed_count, agg.status, hold)
        if stored != derived or (agg.all_resolved and post.completed_at is None):
            logger.warning(
                "Post %s drifted: stored total=%d completed=%d status=%s hold=%s, "
                "derived total=%d completed=%d status=%s hold=%s",
                post.post_number,
                *stored,
                *derived,
                extra={"op": "get_detail", "post_id": post_id},
            )
            completed_at = post.completed_at
            if agg.all_resolved and completed_at is None:
                completed_at = _last_resolution(tasks) or post.updated_at
            hold_cleared_at = post.hold_cleared_at
            if hold == "cleared" and hold_cleared_at is None:
                hold_cleared_at = completed_at
            post = dataclasses.replace(
                post,
                total_departments=len(tasks),
                completed_departments=agg.completed_count,
                completion_rate=agg.rate,
                status=agg.status,
                completed_at=completed_at,
                hold_status=hold,
                hold_cleared_at=hold_cleared_at,
            )
        return post, tasks


def _last_resolution(tasks: Sequence[DepartmentTask]) -> str | None:
    stamps = [t.signoff_at or t.completed_at for t in tasks if t.signoff_at or t.completed_at]
    return max(stamps) if stamps else None


class LegacyDetailSource:
    """Single-record task verifications, presented as a one-department post."""

    name: SourceName = "legacy"

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def find_verification(self, post_id: str) -> sqlite3.Row | None:
        """Match by verification id first, then by the source it was filed against (newest first)."""
        row: sqlite3.Row | None = self._conn.execute(
            "SELECT * FROM task_verifications WHERE id = ?", (post_id,)
        ).fetchone()
        if row is None:
            row = self._conn.execute(
                "SELECT * FROM task_verifications WHERE source_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (post_id,),
            ).fetchone()
        return row

    def fetch(self, post_id: str) -> tuple[IncidentPost, list[DepartmentTask]]:
        row = self.find_verification(post_id)
        if row is None:
            raise NotFoundError(f"Post not found: {post_id}", post_id=post_id)
        return synthesize_legacy(post_id, row)


def synthesize_legacy(post_id: str, row: sqlite3.Row) -> tuple[IncidentPost, list[DepartmentTask]]:
    """Build the uniform read shape from a legacy verification row. Never persisted.

    ``verified`` reads as a completed, signed-off single department; every
    other status reads as pending.
    """
    from taskfeed.core import DepartmentTask, IncidentPost

    verified = row["status"] == "verified"
    resolved_at = row["reviewed_at"] or row["created_at"]
    employee = row["employee_name"] or row["employee_id"] or ""
    code = row["department_code"]
    post_number = row["source_number"] or f"TV-{row['id'][:8]}"

    post = IncidentPost(
        id=post_id,
        post_number=post_number,
        template_id=LEGACY_TEMPLATE_ID,
        template_name=row["category_name"] or "Task Verification",
        created_by=employee,
        location=row["location_name"] or "",
        photo_url=row["photo_uri"],
        notes=row["notes"] or "",
        status="completed" if verified else "pending",
        total_departments=1,
        completed_departments=1 if verified else 0,
        completion_rate=1.0 if verified else 0.0,
        completed_at=resolved_at if verified else None,
        hold_status="none",
        version=0,
        created_at=row["created_at"],
        updated_at=resolved_at,
    )
    task = DepartmentTask(
        id=row["id"],
        post_id=post_id,
        post_number=post_number,
        department_code=code,
        department_name=row["department_name"] or department_name(code),
        status="signed_off" if verified else "pending",
        started_by=employee or None,
        started_at=row["created_at"],
        completed_by=(employee or None) if verified else None,
        completed_at=row["created_at"] if verified else None,
        completion_notes=row["action"] or "",
        signoff_by=row["reviewed_by"] if verified else None,
        signoff_at=resolved_at if verified else None,
        module_reference_type="work_order" if row["work_order_id"] else None,
        module_reference_id=row["work_order_id"],
        created_at=row["created_at"],
        updated_at=resolved_at,
    )
    return post, [task]


class DetailReader:
    """Try each source in order; the first one that finds the post wins.

    A source that raises ``NotFoundError``, or whose table does not exist in
    this store, is skipped. Any other failure propagates.
    """

    def __init__(self, sources: Sequence[DetailSource]) -> None:
        self._sources = list(sources)

    def read(self, post_id: str) -> tuple[SourceName, IncidentPost, list[DepartmentTask]]:
        for source in self._sources:
            try:
                post, tasks = source.fetch(post_id)
            except NotFoundError:
                continue
            except sqlite3.OperationalError as exc:
                if not _is_missing_table(exc):
                    raise
                logger.debug("Detail source %s unavailable: %s", source.name, exc)
                continue
            return source.name, post, tasks
        raise NotFoundError(f"Post not found: {post_id}", post_id=post_id)
