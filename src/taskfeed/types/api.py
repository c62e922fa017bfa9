"""TypedDicts for CLI and library-boundary responses."""

from __future__ import annotations

from typing import Literal, TypedDict

from taskfeed.types.core import DepartmentTaskDict, ISOTimestamp, PostDict, WorkOrderDict


class ErrorResponse(TypedDict):
    """Standard error envelope for every failure surfaced at the boundary.

    ``code`` is the taxonomy kind; callers use ``retryable`` to decide between
    offering "retry" and "this action is not allowed".
    """

    error: str
    code: str
    retryable: bool
    ids: dict[str, str]


class IncidentDetailDict(TypedDict):
    """Read model returned by ``get_detail()``, identical for both sources."""

    source: Literal["canonical", "legacy"]
    post: PostDict
    department_tasks: list[DepartmentTaskDict]
    linked_work_orders: list[WorkOrderDict]


class HoldStateDict(TypedDict):
    post_id: str
    post_number: str
    status: str
    blocking: bool
    production_line: str
    location: str
    cleared_at: str | None
    reinstated_at: str | None


class PostSummary(TypedDict):
    """Reduced post shape for search results in the form linker."""

    id: str
    post_number: str
    template_name: str
    location: str
    created_by: str
    status: str
    hold_status: str
    created_at: ISOTimestamp
