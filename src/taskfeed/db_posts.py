"""PostsMixin — incident post creation, aggregate write-back, hold gate, search.

All methods access ``self.conn``, ``self._list_tasks()``, etc. via Python's
MRO when composed into ``TaskFeedDB``.
"""

from __future__ import annotations

import json
import logging
import secrets
import sqlite3
import string
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from taskfeed.aggregate import aggregate
from taskfeed.db_base import DBMixinProtocol, _is_missing_table, _now_iso, _require_actor
from taskfeed.errors import ConflictError, InvalidInputError, InvalidTemplateError, NotFoundError
from taskfeed.hold import ProductionHoldState, initial_hold_status, next_hold_status
from taskfeed.templates import MANUAL_TEMPLATE_ID, IncidentTemplate, TemplateRegistry
from taskfeed.types.api import PostSummary
from taskfeed.types.core import ISOTimestamp
from taskfeed.validation import sanitize_department_code

if TYPE_CHECKING:
    from taskfeed.core import IncidentPost
    from taskfeed.db_base import HoldStatus
    from taskfeed.reconcile import IncidentDetail
    from taskfeed.templates import ButtonType

logger = logging.getLogger(__name__)

# form_data keys that may carry the incident location when it is not given directly
_LOCATION_KEYS = ("location", "area", "room", "where")
_POST_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


class PostsMixin(DBMixinProtocol):
    """Incident posts: creation with fan-out, derived counters, and the hold gate.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    """

    if TYPE_CHECKING:

        def _insert_task(
            self,
            post_id: str,
            post_number: str,
            department_code: str,
            *,
            requires_signoff: bool,
            is_original: bool,
            priority: str = "medium",
            initiated_by: str | None = None,
            escalated_from_department: str | None = None,
            escalated_from_task_id: str | None = None,
            escalation_reason: str | None = None,
        ) -> str: ...

        def get_detail(self, post_id: str) -> IncidentDetail: ...

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
        ) -> str: ...

    # -- Building ------------------------------------------------------------

    def _build_post(self, row: sqlite3.Row) -> IncidentPost:
        from taskfeed.core import IncidentPost

        return IncidentPost(
            id=row["id"],
            post_number=row["post_number"],
            template_id=row["template_id"],
            template_name=row["template_name"],
            created_by=row["created_by"],
            template_snapshot=json.loads(row["template_snapshot"] or "{}"),
            facility=row["facility"] or "",
            location=row["location"] or "",
            production_line=row["production_line"] or "",
            form_data=json.loads(row["form_data"] or "{}"),
            photo_url=row["photo_url"],
            notes=row["notes"] or "",
            status=row["status"],
            total_departments=row["total_departments"],
            completed_departments=row["completed_departments"],
            completion_rate=row["completion_rate"],
            completed_at=row["completed_at"],
            hold_status=row["hold_status"],
            hold_cleared_at=row["hold_cleared_at"],
            hold_reinstated_at=row["hold_reinstated_at"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_post(self, post_id: str) -> IncidentPost:
        row = self.conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Post not found: {post_id}", post_id=post_id)
        return self._build_post(row)

    def list_posts(self, *, limit: int = 50) -> list[IncidentPost]:
        """Most recent posts first."""
        rows = self.conn.execute(
            "SELECT * FROM posts ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._build_post(r) for r in rows]

    def snapshot_template(self, post: IncidentPost) -> IncidentTemplate:
        """The template as it was when the post was created."""
        return TemplateRegistry.parse_template(post.template_snapshot)

    # -- Creation ------------------------------------------------------------

    def _generate_post_number(self) -> str:
        """``TF-YYMMDD-XXXXXX`` with a random base-36 suffix, unique among posts."""
        day = datetime.now(UTC).strftime("%y%m%d")
        for _ in range(10):
            suffix = "".join(secrets.choice(_POST_NUMBER_ALPHABET) for _ in range(6))
            candidate = f"TF-{day}-{suffix}"
            if self.conn.execute("SELECT 1 FROM posts WHERE post_number = ?", (candidate,)).fetchone() is None:
                return candidate
        msg = "Could not allocate a unique post number"
        raise RuntimeError(msg)

    def create_post(
        self,
        template: IncidentTemplate | str,
        *,
        actor: str,
        facility: str = "",
        location: str = "",
        form_data: dict[str, Any] | None = None,
        photo_url: str | None = None,
        notes: str = "",
        departments: list[str] | None = None,
    ) -> IncidentPost:
        """Report an incident and fan it out to one task per department.

        ``template`` may be an ``IncidentTemplate`` or a free-text name resolved
        through ``TemplateRegistry.lookup``. ``departments`` replaces the
        template's assigned set (duplicates dropped, order kept).

        Raises:
            NotFoundError: Template name does not resolve.
            InvalidTemplateError: The effective department set is empty.
            InvalidInputError: Bad actor or department code, or missing required photo.
        """
        actor = _require_actor(actor)
        tpl = template if isinstance(template, IncidentTemplate) else self.templates.lookup(template)

        raw_departments = list(tpl.assigned_departments) if departments is None else departments
        effective: list[str] = []
        for code in raw_departments:
            cleaned, err = sanitize_department_code(code)
            if err:
                raise InvalidInputError(err, template_id=tpl.id)
            if cleaned not in effective:
                effective.append(cleaned)
        if not effective:
            raise InvalidTemplateError(f"Template '{tpl.name}' resolves to no departments", template_id=tpl.id)

        if tpl.photo_required and not (photo_url and photo_url.strip()):
            raise InvalidInputError(f"Template '{tpl.name}' requires a photo", template_id=tpl.id)

        form_data = dict(form_data or {})
        if not location.strip():
            for key in _LOCATION_KEYS:
                value = str(form_data.get(key) or "").strip()
                if value:
                    location = value
                    break
        production_line = str(form_data.get("production_line") or "").strip()
        facility = facility or self.config.get("facility", "")
        hold_status = initial_hold_status(tpl.is_production_hold)
        now = _now_iso()

        with self._write_transaction("create_post"):
            post_id = self._generate_unique_id("posts")
            post_number = self._generate_post_number()
            self.conn.execute(
                "INSERT INTO posts (id, post_number, template_id, template_name, template_snapshot, created_by, "
                "facility, location, production_line, form_data, photo_url, notes, status, total_departments, "
                "hold_status, version, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, 1, ?, ?)",
                (
                    post_id,
                    post_number,
                    tpl.id,
                    tpl.name,
                    json.dumps(tpl.to_dict()),
                    actor,
                    facility,
                    location.strip(),
                    production_line,
                    json.dumps(form_data),
                    photo_url,
                    notes,
                    len(effective),
                    hold_status,
                    now,
                    now,
                ),
            )
            self._record_event(post_id, "post_created", actor=actor, new_value=post_number, comment=tpl.name)
            for code in effective:
                task_id = self._insert_task(
                    post_id,
                    post_number,
                    code,
                    requires_signoff=tpl.requires_signoff(code),
                    is_original=True,
                )
                self._record_event(post_id, "department_assigned", actor=actor, task_id=task_id, new_value=code)
            if hold_status == "active":
                self._record_event(post_id, "hold_activated", actor=actor, new_value="active")
            self._run_workflow_rules(tpl, post_id, post_number, form_data, actor=actor)

        logger.info(
            "Created post %s from template %s with %d department(s)",
            post_number,
            tpl.id,
            len(effective),
            extra={"op": "create_post", "post_id": post_id},
        )
        return self.get_post(post_id)

    def create_manual_post(
        self,
        title: str,
        *,
        departments: list[str],
        actor: str,
        button_type: str = "report_issue",
        description: str = "",
        facility: str = "",
        location: str = "",
        form_data: dict[str, Any] | None = None,
        photo_url: str | None = None,
        notes: str = "",
        is_production_hold: bool = False,
    ) -> IncidentPost:
        """Report an incident that no template describes.

        The post snapshots an ad hoc template named after ``title`` with the
        given departments and no suggested forms, so no task requires sign-off.

        Raises:
            InvalidInputError: Empty title, bad button type, actor or department code.
            InvalidTemplateError: ``departments`` is empty.
        """
        if not title or not title.strip():
            raise InvalidInputError("Manual post title cannot be empty")
        codes: list[str] = []
        for code in departments:
            cleaned, err = sanitize_department_code(code)
            if err:
                raise InvalidInputError(err, template_id=MANUAL_TEMPLATE_ID)
            if cleaned not in codes:
                codes.append(cleaned)
        try:
            tpl = IncidentTemplate(
                id=MANUAL_TEMPLATE_ID,
                name=title.strip(),
                description=description,
                button_type=cast("ButtonType", button_type),
                assigned_departments=tuple(codes),
                is_production_hold=is_production_hold,
            )
        except ValueError as exc:
            raise InvalidInputError(str(exc), template_id=MANUAL_TEMPLATE_ID) from exc
        return self.create_post(
            tpl,
            actor=actor,
            facility=facility,
            location=location,
            form_data=form_data,
            photo_url=photo_url,
            notes=notes,
        )

    def _run_workflow_rules(
        self,
        tpl: IncidentTemplate,
        post_id: str,
        post_number: str,
        form_data: dict[str, Any],
        *,
        actor: str,
    ) -> None:
        """Fire the template's rules for a new post. Runs inside ``create_post``'s transaction."""
        for rule in tpl.workflow_rules:
            if not rule.matches(form_data):
                logger.debug("Workflow rule %s on %s not met", rule.action, post_number)
                continue
            if rule.action == "create_work_order":
                description = (
                    f"Auto-generated from incident post {post_number}\n\n"
                    f"Form data:\n{json.dumps(form_data, indent=2, sort_keys=True)}"
                )
                try:
                    wo_id = self._insert_work_order(
                        f"[{post_number}] {tpl.name}",
                        description=description,
                        priority=rule.work_order_priority,
                        source_type="incident",
                        source_id=post_id,
                    )
                except sqlite3.OperationalError as exc:
                    if not _is_missing_table(exc):
                        raise
                    logger.warning(
                        "Work orders unavailable, skipping rule for %s",
                        post_number,
                        extra={"op": "create_post", "post_id": post_id, "error": str(exc)},
                    )
                    continue
                self._record_event(
                    post_id, "work_order_created", actor=actor, new_value=wo_id, comment=rule.work_order_priority
                )
            elif rule.action == "alert_personnel":
                self._record_event(
                    post_id, "personnel_alerted", actor=actor, new_value=", ".join(rule.alert_personnel)
                )
            elif rule.action == "notify":
                self._record_event(post_id, "notification_requested", actor=actor, new_value=post_number)

    # -- Aggregate write-back ------------------------------------------------

    @staticmethod
    def _check_expected_version(post: IncidentPost, expected_version: int | None) -> None:
        if expected_version is not None and post.version != expected_version:
            raise ConflictError(post.id, expected_version, post.version)

    def _write_aggregate(
        self,
        post: IncidentPost,
        *,
        actor: str,
        escalated: bool = False,
    ) -> None:
        """Recompute counters and hold from a fresh read of all tasks and persist them.

        Must run inside ``_write_transaction``. ``post`` is the row as read
        earlier in the same transaction; the update is conditional on its
        version so a concurrent writer surfaces as ``ConflictError``.
        """
        tasks = self._list_tasks(post.id)
        total = len(tasks)
        agg = aggregate(tasks, total)
        now = _now_iso()

        was_completed = post.status == "completed"
        completed_at = post.completed_at
        if agg.all_resolved and not was_completed:
            completed_at = now

        previous_hold = cast("HoldStatus", post.hold_status)
        is_production_hold = bool(post.template_snapshot.get("is_production_hold", False))
        hold = next_hold_status(
            previous_hold,
            is_production_hold=is_production_hold,
            all_resolved=agg.all_resolved,
            escalated=escalated,
        )
        hold_cleared_at = post.hold_cleared_at
        hold_reinstated_at = post.hold_reinstated_at
        if hold == "cleared" and previous_hold != "cleared":
            hold_cleared_at = now
        if hold == "reinstated" and previous_hold != "reinstated":
            hold_reinstated_at = now

        cursor = self.conn.execute(
            "UPDATE posts SET status = ?, total_departments = ?, completed_departments = ?, completion_rate = ?, "
            "completed_at = ?, hold_status = ?, hold_cleared_at = ?, hold_reinstated_at = ?, "
            "version = version + 1, updated_at = ? WHERE id = ? AND version = ?",
            (
                agg.status,
                total,
                agg.completed_count,
                agg.rate,
                completed_at,
                hold,
                hold_cleared_at,
                hold_reinstated_at,
                now,
                post.id,
                post.version,
            ),
        )
        if cursor.rowcount == 0:
            current = self.get_post(post.id)
            raise ConflictError(post.id, post.version, current.version)

        if agg.all_resolved and not was_completed:
            self._record_event(post.id, "post_completed", actor=actor, old_value=post.status, new_value="completed")
        if hold != previous_hold:
            if hold == "cleared":
                self._record_event(post.id, "hold_cleared", actor=actor, old_value=previous_hold, new_value=hold)
            elif hold == "reinstated":
                self._record_event(post.id, "hold_reinstated", actor=actor, old_value=previous_hold, new_value=hold)

    # -- Hold gate -----------------------------------------------------------

    @staticmethod
    def _hold_state(post: IncidentPost) -> ProductionHoldState:
        return ProductionHoldState(
            post_id=post.id,
            post_number=post.post_number,
            status=cast("HoldStatus", post.hold_status),
            production_line=post.production_line,
            location=post.location,
            cleared_at=post.hold_cleared_at,
            reinstated_at=post.hold_reinstated_at,
        )

    def evaluate_hold(self, post_id: str) -> ProductionHoldState:
        """Current hold state of a post. Legacy records never hold production."""
        return self._hold_state(self.get_detail(post_id).post)

    def active_holds(self, production_line: str | None = None) -> list[ProductionHoldState]:
        """Posts currently blocking production, newest first, optionally for one line."""
        sql = "SELECT * FROM posts WHERE hold_status IN ('active', 'reinstated')"
        params: list[Any] = []
        if production_line is not None:
            sql += " AND production_line = ?"
            params.append(production_line)
        sql += " ORDER BY created_at DESC, rowid DESC"
        return [self._hold_state(self._build_post(r)) for r in self.conn.execute(sql, params).fetchall()]

    def is_line_blocked(self, production_line: str) -> bool:
        return bool(self.active_holds(production_line))

    # -- Search --------------------------------------------------------------

    def search_posts(self, query: str, limit: int = 20) -> list[PostSummary]:
        """Case-insensitive substring search over the most recent posts.

        Only the newest ``search_window`` posts are considered; matching is
        done client-side over post number, template name, location and author.
        """
        window = int(self.config.get("search_window", 50))
        if not 1 <= limit <= window:
            raise InvalidInputError(f"limit must be between 1 and {window}, got {limit}")
        needle = query.strip().casefold()
        results: list[PostSummary] = []
        for post in self.list_posts(limit=window):
            haystack = (post.post_number, post.template_name, post.location, post.created_by)
            if needle and not any(needle in field.casefold() for field in haystack):
                continue
            results.append(
                PostSummary(
                    id=post.id,
                    post_number=post.post_number,
                    template_name=post.template_name,
                    location=post.location,
                    created_by=post.created_by,
                    status=post.status,
                    hold_status=post.hold_status,
                    created_at=ISOTimestamp(post.created_at),
                )
            )
            if len(results) >= limit:
                break
        return results
