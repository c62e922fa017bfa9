"""TasksMixin — department task rows, escalation, and the task state machine.

All methods access ``self.conn``, ``self.get_post()``, etc. via Python's MRO
when composed into ``TaskFeedDB``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from taskfeed.aggregate import TASK_STATUS_ORDER
from taskfeed.db_base import VALID_PRIORITIES, DBMixinProtocol, Priority, TaskStatus, _now_iso, _require_actor
from taskfeed.errors import AlreadyAssignedError, InvalidInputError, InvalidTransitionError, NotFoundError
from taskfeed.templates_data import department_name
from taskfeed.validation import sanitize_department_code

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask, IncidentPost
    from taskfeed.templates import IncidentTemplate

logger = logging.getLogger(__name__)


class TasksMixin(DBMixinProtocol):
    """Department tasks: fan-out rows, mid-flight escalation, status transitions.

    Every mutation re-reads all of the post's tasks and rewrites the post's
    derived counters in the same ``BEGIN IMMEDIATE`` transaction.
    """

    if TYPE_CHECKING:

        @staticmethod
        def _check_expected_version(post: IncidentPost, expected_version: int | None) -> None: ...

        def _write_aggregate(self, post: IncidentPost, *, actor: str, escalated: bool = False) -> None: ...

        def snapshot_template(self, post: IncidentPost) -> IncidentTemplate: ...

    # -- Building ------------------------------------------------------------

    def _build_task(self, row: sqlite3.Row) -> DepartmentTask:
        from taskfeed.core import DepartmentTask

        return DepartmentTask(
            id=row["id"],
            post_id=row["post_id"],
            post_number=row["post_number"],
            department_code=row["department_code"],
            department_name=row["department_name"],
            status=row["status"],
            requires_signoff=bool(row["requires_signoff"]),
            is_original=bool(row["is_original"]),
            initiated_by=row["initiated_by"],
            escalated_from_department=row["escalated_from_department"],
            escalated_from_task_id=row["escalated_from_task_id"],
            escalation_reason=row["escalation_reason"],
            escalated_at=row["escalated_at"],
            priority=row["priority"],
            started_by=row["started_by"],
            started_at=row["started_at"],
            completed_by=row["completed_by"],
            completed_at=row["completed_at"],
            completion_notes=row["completion_notes"] or "",
            signoff_by=row["signoff_by"],
            signoff_at=row["signoff_at"],
            signoff_notes=row["signoff_notes"] or "",
            form_type=row["form_type"],
            form_response=json.loads(row["form_response"] or "{}"),
            module_reference_type=row["module_reference_type"],
            module_reference_id=row["module_reference_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_task(self, task_id: str) -> DepartmentTask:
        row = self.conn.execute("SELECT * FROM department_tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Task not found: {task_id}", task_id=task_id)
        return self._build_task(row)

    def _list_tasks(self, post_id: str) -> list[DepartmentTask]:
        rows = self.conn.execute(
            "SELECT * FROM department_tasks WHERE post_id = ? ORDER BY created_at, rowid",
            (post_id,),
        ).fetchall()
        return [self._build_task(r) for r in rows]

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
    ) -> str:
        """Insert one pending task row. Caller owns the transaction."""
        task_id = self._generate_unique_id("department_tasks", "t")
        now = _now_iso()
        self.conn.execute(
            "INSERT INTO department_tasks (id, post_id, post_number, department_code, department_name, status, "
            "requires_signoff, is_original, initiated_by, escalated_from_department, escalated_from_task_id, "
            "escalation_reason, escalated_at, priority, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task_id,
                post_id,
                post_number,
                department_code,
                department_name(department_code),
                int(requires_signoff),
                int(is_original),
                initiated_by,
                escalated_from_department,
                escalated_from_task_id,
                escalation_reason,
                None if is_original else now,
                priority,
                now,
                now,
            ),
        )
        return task_id

    # -- Escalation ----------------------------------------------------------

    def escalate(
        self,
        post_id: str,
        department_code: str,
        *,
        actor: str,
        reason: str = "",
        from_task_id: str | None = None,
        priority: Priority = "high",
        requires_signoff: bool | None = None,
        expected_version: int | None = None,
    ) -> DepartmentTask:
        """Pull another department into a live incident.

        ``requires_signoff=None`` derives the flag from the post's template
        snapshot. Repeat escalation of a department that only holds escalated
        tasks follows the ``escalation_policy`` config key.

        Raises:
            NotFoundError: Post (or ``from_task_id``) does not exist.
            AlreadyAssignedError: The department already has a task on the post.
            InvalidInputError: Bad actor, department code, priority, or source task.
            ConflictError: ``expected_version`` is stale.
        """
        actor = _require_actor(actor)
        code, err = sanitize_department_code(department_code)
        if err:
            raise InvalidInputError(err, post_id=post_id)
        if priority not in VALID_PRIORITIES:
            raise InvalidInputError(
                f"Invalid priority '{priority}': must be one of {sorted(VALID_PRIORITIES)}", post_id=post_id
            )

        with self._write_transaction("escalate", post_id=post_id):
            post = self.get_post(post_id)
            self._check_expected_version(post, expected_version)

            existing = [t for t in self._list_tasks(post_id) if t.department_code == code]
            original = next((t for t in existing if t.is_original), None)
            if original is not None:
                raise AlreadyAssignedError(post_id, code, existing_task_id=original.id, is_original=True)
            if existing and self.config.get("escalation_policy", "reject") != "allow":
                raise AlreadyAssignedError(post_id, code, existing_task_id=existing[0].id, is_original=False)

            from_department: str | None = None
            if from_task_id is not None:
                source = self.get_task(from_task_id)
                if source.post_id != post_id:
                    raise InvalidInputError(
                        f"Task {from_task_id} belongs to post {source.post_id}, not {post_id}",
                        post_id=post_id,
                        task_id=from_task_id,
                    )
                from_department = source.department_code

            if requires_signoff is None:
                requires_signoff = self.snapshot_template(post).requires_signoff(code)

            task_id = self._insert_task(
                post_id,
                post.post_number,
                code,
                requires_signoff=requires_signoff,
                is_original=False,
                priority=priority,
                initiated_by=actor,
                escalated_from_department=from_department,
                escalated_from_task_id=from_task_id,
                escalation_reason=reason,
            )
            self._record_event(
                post_id,
                "escalated",
                actor=actor,
                task_id=task_id,
                old_value=from_department,
                new_value=code,
                comment=reason,
            )
            self._record_event(post_id, "department_assigned", actor=actor, task_id=task_id, new_value=code)
            self._write_aggregate(post, actor=actor, escalated=True)

        logger.info(
            "Escalated post %s to department %s",
            post.post_number,
            code,
            extra={"op": "escalate", "post_id": post_id},
        )
        return self.get_task(task_id)

    # -- Transitions ---------------------------------------------------------

    @staticmethod
    def _validate_transition(task: DepartmentTask, new_status: str, actor: str) -> None:
        current = task.status
        if new_status == current:
            raise InvalidTransitionError(task.id, current, new_status, f"task is already '{current}'")
        if TASK_STATUS_ORDER[new_status] < TASK_STATUS_ORDER[current]:
            raise InvalidTransitionError(task.id, current, new_status, "tasks cannot move backward")
        if new_status == "signed_off":
            if current != "completed":
                raise InvalidTransitionError(task.id, current, new_status, "only a completed task can be signed off")
            if task.requires_signoff and task.completed_by == actor:
                raise InvalidTransitionError(
                    task.id, current, new_status, "sign-off must come from someone other than the completer"
                )

    def transition_task(
        self,
        task_id: str,
        new_status: TaskStatus,
        *,
        actor: str,
        notes: str = "",
        form_type: str | None = None,
        form_response: dict[str, Any] | None = None,
        module_reference: tuple[str, str] | None = None,
        expected_version: int | None = None,
    ) -> DepartmentTask:
        """Move a task forward and recompute its post.

        Status order is ``pending < in_progress < completed < signed_off``;
        forward skips are allowed except that ``signed_off`` needs ``completed``.
        ``notes`` become completion notes or sign-off notes depending on the
        target. ``module_reference`` is a ``(type, id)`` pair such as
        ``("work_order", "<id>")``.

        Raises:
            NotFoundError: Task does not exist.
            InvalidTransitionError: Same, backward, or disallowed move.
            InvalidInputError: Unknown status or bad actor.
            ConflictError: ``expected_version`` is stale.
        """
        actor = _require_actor(actor)
        if new_status not in TASK_STATUS_ORDER:
            raise InvalidInputError(
                f"Unknown task status '{new_status}': must be one of {list(TASK_STATUS_ORDER)}", task_id=task_id
            )

        with self._write_transaction("transition_task"):
            task = self.get_task(task_id)
            post = self.get_post(task.post_id)
            self._check_expected_version(post, expected_version)
            self._validate_transition(task, new_status, actor)

            now = _now_iso()
            updates: dict[str, Any] = {"status": new_status, "updated_at": now}
            if task.started_at is None:
                updates["started_by"] = actor
                updates["started_at"] = now
            if new_status == "completed":
                updates["completed_by"] = actor
                updates["completed_at"] = now
                updates["completion_notes"] = notes
            elif new_status == "signed_off":
                updates["signoff_by"] = actor
                updates["signoff_at"] = now
                updates["signoff_notes"] = notes
            if form_type is not None:
                updates["form_type"] = form_type
            if form_response is not None:
                updates["form_response"] = json.dumps(form_response)
            if module_reference is not None:
                updates["module_reference_type"], updates["module_reference_id"] = module_reference

            # Column names are the literal keys above, never caller input.
            assignments = ", ".join(f"{col} = ?" for col in updates)
            self.conn.execute(
                f"UPDATE department_tasks SET {assignments} WHERE id = ?",
                (*updates.values(), task_id),
            )
            self._record_event(
                task.post_id,
                "task_status_changed",
                actor=actor,
                task_id=task_id,
                old_value=task.status,
                new_value=new_status,
                comment=notes,
            )
            self._write_aggregate(post, actor=actor)

        logger.info(
            "Task %s (%s) %s -> %s",
            task_id,
            task.department_code,
            task.status,
            new_status,
            extra={"op": "transition_task", "post_id": task.post_id},
        )
        return self.get_task(task_id)

    def start_task(self, task_id: str, *, actor: str, expected_version: int | None = None) -> DepartmentTask:
        return self.transition_task(task_id, "in_progress", actor=actor, expected_version=expected_version)

    def complete_task(
        self,
        task_id: str,
        *,
        actor: str,
        notes: str = "",
        form_type: str | None = None,
        form_response: dict[str, Any] | None = None,
        module_reference: tuple[str, str] | None = None,
        expected_version: int | None = None,
    ) -> DepartmentTask:
        return self.transition_task(
            task_id,
            "completed",
            actor=actor,
            notes=notes,
            form_type=form_type,
            form_response=form_response,
            module_reference=module_reference,
            expected_version=expected_version,
        )

    def sign_off_task(
        self, task_id: str, *, actor: str, notes: str = "", expected_version: int | None = None
    ) -> DepartmentTask:
        return self.transition_task(task_id, "signed_off", actor=actor, notes=notes, expected_version=expected_version)
