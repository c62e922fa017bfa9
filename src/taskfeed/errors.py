"""Failure taxonomy for the incident workflow engine.

Every exception carries a ``kind`` (the wire code), the identifiers involved,
and whether the caller may safely retry with the same parameters. Caller and
data errors subclass ``ValueError`` (or ``KeyError`` for lookups) so existing
``except ValueError`` call sites keep working.
"""

from __future__ import annotations

from typing import ClassVar

from taskfeed.types.api import ErrorResponse


class TaskFeedError(Exception):
    """Base class for all typed engine failures."""

    kind: ClassVar[str] = "error"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, **ids: str) -> None:
        self.message = message
        self.ids = {k: v for k, v in ids.items() if v is not None}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.kind, retryable=self.retryable, ids=dict(self.ids))


class NotFoundError(TaskFeedError, KeyError):
    """Identity absent in both the canonical and legacy paths."""

    kind = "not_found"


class InvalidTemplateError(TaskFeedError, ValueError):
    """Template (or override) resolves to an empty department set."""

    kind = "invalid_template"


class AlreadyAssignedError(TaskFeedError, ValueError):
    """Escalation target already has a task on the post."""

    kind = "already_assigned"

    def __init__(self, post_id: str, department_code: str, *, existing_task_id: str, is_original: bool) -> None:
        self.post_id = post_id
        self.department_code = department_code
        self.existing_task_id = existing_task_id
        self.is_original = is_original
        provenance = "an original" if is_original else "an escalated"
        super().__init__(
            f"Department {department_code} already has {provenance} task ({existing_task_id}) on post {post_id}",
            post_id=post_id,
            department_code=department_code,
            task_id=existing_task_id,
        )


class InvalidTransitionError(TaskFeedError, ValueError):
    """Backward, repeated, skipped, or sign-off-violating task transition."""

    kind = "invalid_transition"

    def __init__(self, task_id: str, from_status: str, to_status: str, reason: str) -> None:
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Cannot transition task {task_id} '{from_status}' -> '{to_status}': {reason}",
            task_id=task_id,
        )


class InvalidInputError(TaskFeedError, ValueError):
    """Malformed caller input (actor, limit, missing required photo, ...)."""

    kind = "invalid_input"


class StoreUnavailableError(TaskFeedError):
    """Transient store failure (lock timeout, I/O). Safe to retry."""

    kind = "store_unavailable"
    retryable = True


class ConflictError(TaskFeedError):
    """Concurrent mutation changed the post. Re-read, then reapply."""

    kind = "conflict"
    retryable = True

    def __init__(self, post_id: str, expected_version: int, actual_version: int) -> None:
        self.post_id = post_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Post {post_id} changed concurrently (expected version {expected_version}, found {actual_version})",
            post_id=post_id,
        )
