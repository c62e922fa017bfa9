"""LinksMixin — work-order cross references and post-as-evidence form links.

All methods access ``self.conn``, ``self.get_detail()``, etc. via Python's MRO
when composed into ``TaskFeedDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from taskfeed.db_base import DBMixinProtocol, _is_missing_table, _now_iso, _require_actor
from taskfeed.errors import InvalidInputError

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask, FormLink, IncidentPost, WorkOrder
    from taskfeed.reconcile import IncidentDetail

logger = logging.getLogger(__name__)


class LinksMixin(DBMixinProtocol):
    """Work orders raised against an incident, and forms filed as its evidence.

    Neither direction writes a back-reference onto the post.
    """

    if TYPE_CHECKING:

        def get_detail(self, post_id: str) -> IncidentDetail: ...

    # -- Work orders ---------------------------------------------------------

    def _build_work_order(self, row: sqlite3.Row) -> WorkOrder:
        from taskfeed.core import WorkOrder

        return WorkOrder(
            id=row["id"],
            work_order_number=row["work_order_number"],
            title=row["title"],
            description=row["description"] or "",
            status=row["status"],
            priority=row["priority"],
            department=row["department"] or "",
            source_type=row["source_type"],
            source_id=row["source_id"],
            created_at=row["created_at"],
        )

    def _legacy_work_order_ids(self, post_id: str) -> list[str]:
        try:
            rows = self.conn.execute(
                "SELECT work_order_id FROM task_verifications "
                "WHERE (id = ? OR source_id = ?) AND work_order_id IS NOT NULL "
                "ORDER BY created_at DESC, rowid DESC",
                (post_id, post_id),
            ).fetchall()
        except sqlite3.OperationalError as exc:
            if not _is_missing_table(exc):
                raise
            return []
        return [r["work_order_id"] for r in rows]

    def _collect_work_orders(self, post: IncidentPost, tasks: list[DepartmentTask]) -> list[WorkOrder]:
        """Union of every way a work order can point at this incident, deduplicated by id.

        Sources in order: task module references, the legacy verification's
        work order, work orders sourced from the post, and work orders whose
        description mentions the post number.
        """
        found: dict[str, WorkOrder] = {}

        referenced = [t.module_reference_id for t in tasks if t.module_reference_type == "work_order" and t.module_reference_id]
        try:
            for wo_id in [*referenced, *self._legacy_work_order_ids(post.id)]:
                if wo_id in found:
                    continue
                row = self.conn.execute("SELECT * FROM work_orders WHERE id = ?", (wo_id,)).fetchone()
                if row is None:
                    logger.debug("Post %s references missing work order %s", post.post_number, wo_id)
                    continue
                found[wo_id] = self._build_work_order(row)

            rows = self.conn.execute(
                "SELECT * FROM work_orders WHERE source_id = ? ORDER BY created_at, rowid",
                (post.id,),
            ).fetchall()
            if post.post_number:
                rows += self.conn.execute(
                    "SELECT * FROM work_orders WHERE instr(description, ?) > 0 ORDER BY created_at, rowid",
                    (post.post_number,),
                ).fetchall()
        except sqlite3.OperationalError as exc:
            if not _is_missing_table(exc):
                raise
            logger.debug("Work orders unavailable for post %s: %s", post.post_number, exc)
            return []
        for row in rows:
            if row["id"] not in found:
                found[row["id"]] = self._build_work_order(row)
        return list(found.values())

    def resolve_work_orders(self, post_id: str) -> list[WorkOrder]:
        """Work orders linked to a post (canonical or legacy) by any route."""
        return self.get_detail(post_id).work_orders

    def record_work_order(
        self,
        title: str,
        *,
        work_order_number: str = "",
        description: str = "",
        status: str = "open",
        priority: str = "medium",
        department: str = "",
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> WorkOrder:
        """Insert a work order row on behalf of the maintenance module (seeding and imports)."""
        with self._write_transaction("record_work_order", post_id=source_id):
            wo_id = self._insert_work_order(
                title,
                work_order_number=work_order_number,
                description=description,
                status=status,
                priority=priority,
                department=department,
                source_type=source_type,
                source_id=source_id,
            )
        row = self.conn.execute("SELECT * FROM work_orders WHERE id = ?", (wo_id,)).fetchone()
        return self._build_work_order(row)

    def _insert_work_order(
        self,
        title: str,
        *,
        work_order_number: str = "",
        description: str = "",
        status: str = "open",
        priority: str = "medium",
        department: str = "",
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> str:
        """Insert one work order row and return its id. Caller owns the transaction."""
        if not title or not title.strip():
            raise InvalidInputError("Work order title cannot be empty")
        wo_id = self._generate_unique_id("work_orders", "wo")
        self.conn.execute(
            "INSERT INTO work_orders (id, work_order_number, title, description, status, priority, department, "
            "source_type, source_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                wo_id,
                work_order_number or wo_id.upper(),
                title.strip(),
                description,
                status,
                priority,
                department,
                source_type,
                source_id,
                _now_iso(),
            ),
        )
        return wo_id

    # -- Form links ----------------------------------------------------------

    def _build_form_link(self, row: sqlite3.Row) -> FormLink:
        from taskfeed.core import FormLink

        return FormLink(
            form_type=row["form_type"],
            form_id=row["form_id"],
            post_id=row["post_id"],
            post_number=row["post_number"],
            linked_by=row["linked_by"] or "",
            linked_at=row["linked_at"],
        )

    @staticmethod
    def _require_form_key(form_type: str, form_id: str) -> tuple[str, str]:
        form_type, form_id = (form_type or "").strip(), (form_id or "").strip()
        if not form_type or not form_id:
            raise InvalidInputError("form_type and form_id are required")
        return form_type, form_id

    def link_form(self, form_type: str, form_id: str, post_id: str, *, actor: str) -> FormLink:
        """Record that a form was filed as evidence for a post.

        Replaces any existing link for the same form. The post number is
        cached on the link for display.

        Raises:
            NotFoundError: ``post_id`` resolves to neither a post nor a legacy record.
        """
        from taskfeed.core import FormLink

        actor = _require_actor(actor)
        form_type, form_id = self._require_form_key(form_type, form_id)
        post = self.get_detail(post_id).post
        link = FormLink(form_type, form_id, post_id, post.post_number, linked_by=actor, linked_at=_now_iso())
        with self._write_transaction("link_form", post_id=post_id):
            self.conn.execute(
                "INSERT OR REPLACE INTO form_links (form_type, form_id, post_id, post_number, linked_by, linked_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (link.form_type, link.form_id, link.post_id, link.post_number, link.linked_by, link.linked_at),
            )
        return link

    def get_form_link(self, form_type: str, form_id: str) -> FormLink | None:
        row = self.conn.execute(
            "SELECT * FROM form_links WHERE form_type = ? AND form_id = ?",
            (form_type, form_id),
        ).fetchone()
        return self._build_form_link(row) if row is not None else None

    def clear_form_link(self, form_type: str, form_id: str) -> bool:
        """Remove a form's link. Returns False if the form was not linked."""
        form_type, form_id = self._require_form_key(form_type, form_id)
        with self._write_transaction("clear_form_link"):
            cursor = self.conn.execute(
                "DELETE FROM form_links WHERE form_type = ? AND form_id = ?",
                (form_type, form_id),
            )
        return cursor.rowcount > 0
