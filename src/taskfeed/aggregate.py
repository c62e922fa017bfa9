"""Completion aggregation -- pure derivation of post counters from its tasks.

No store access. ``db_tasks`` calls :func:`aggregate` on a fresh read of all
of a post's tasks inside the writing transaction; ``db_detail`` calls it on
read to detect drift.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask
    from taskfeed.db_base import PostStatus

TASK_STATUS_ORDER: dict[str, int] = {"pending": 0, "in_progress": 1, "completed": 2, "signed_off": 3}


@dataclass(frozen=True)
class Aggregate:
    completed_count: int
    rate: float
    all_resolved: bool
    status: PostStatus


def is_resolved(status: str, requires_signoff: bool) -> bool:
    """A task counts toward the all clear once it can no longer block it."""
    if status == "signed_off":
        return True
    return status == "completed" and not requires_signoff


def aggregate(tasks: Iterable[DepartmentTask], total_departments: int) -> Aggregate:
    """Derive the post's counters and status from its tasks.

    ``total_departments`` is passed separately so a post whose count disagrees
    with its task rows still yields a bounded rate.
    """
    completed = 0
    any_started = False
    for task in tasks:
        if is_resolved(task.status, task.requires_signoff):
            completed += 1
        if task.status != "pending":
            any_started = True

    if total_departments <= 0:
        return Aggregate(completed_count=0, rate=0.0, all_resolved=False, status="in_progress" if any_started else "pending")

    completed = min(completed, total_departments)
    all_resolved = completed == total_departments
    status: PostStatus
    if all_resolved:
        status = "completed"
    elif completed > 0 or any_started:
        status = "in_progress"
    else:
        status = "pending"
    return Aggregate(completed_count=completed, rate=completed / total_departments, all_resolved=all_resolved, status=status)
