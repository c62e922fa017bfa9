"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .taskfeed/config.json."""

    prefix: str
    version: int
    facility: str
    busy_timeout_ms: int
    search_window: int
    escalation_policy: str


class PostDict(TypedDict):
    id: str
    post_number: str
    template_id: str
    template_name: str
    created_by: str
    facility: str
    location: str
    production_line: str
    form_data: dict[str, Any]
    photo_url: str | None
    notes: str
    status: str
    total_departments: int
    completed_departments: int
    completion_rate: float
    completed_at: ISOTimestamp | None
    hold_status: str
    hold_cleared_at: ISOTimestamp | None
    hold_reinstated_at: ISOTimestamp | None
    version: int
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class DepartmentTaskDict(TypedDict):
    id: str
    post_id: str
    post_number: str
    department_code: str
    department_name: str
    status: str
    requires_signoff: bool
    is_original: bool
    initiated_by: str | None
    escalated_from_department: str | None
    escalated_from_task_id: str | None
    escalation_reason: str | None
    escalated_at: ISOTimestamp | None
    priority: str
    started_by: str | None
    started_at: ISOTimestamp | None
    completed_by: str | None
    completed_at: ISOTimestamp | None
    completion_notes: str
    signoff_by: str | None
    signoff_at: ISOTimestamp | None
    signoff_notes: str
    form_type: str | None
    form_response: dict[str, Any]
    module_reference_type: str | None
    module_reference_id: str | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class WorkOrderDict(TypedDict):
    id: str
    work_order_number: str
    title: str
    description: str
    status: str
    priority: str
    department: str
    source_type: str | None
    source_id: str | None
    created_at: ISOTimestamp


class FormLinkDict(TypedDict):
    form_type: str
    form_id: str
    post_id: str
    post_number: str
    linked_by: str
    linked_at: ISOTimestamp
