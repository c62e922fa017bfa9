"""Tests for escalating additional departments into a live incident."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from taskfeed.core import DepartmentTask, IncidentPost, TaskFeedDB
from taskfeed.errors import AlreadyAssignedError, InvalidInputError, NotFoundError
from taskfeed.templates_data import HR, IT, QUAL, SAFE, WARE
from tests._db_factory import make_db

TaskFor = Callable[[IncidentPost, str], DepartmentTask]


class TestEscalate:
    def test_adds_escalated_task(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        task = db.escalate(spill.id, HR, actor="safety-lead", reason="Exposure")
        assert task.is_original is False
        assert task.department_code == HR
        assert task.department_name == "HR"
        assert task.status == "pending"
        assert task.priority == "high"
        assert task.initiated_by == "safety-lead"
        assert task.escalation_reason == "Exposure"
        assert task.escalated_at is not None

    def test_updates_counters(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        db.escalate(spill.id, HR, actor="a")
        post = db.get_post(spill.id)
        assert post.total_departments == 6
        assert post.version == 2

    def test_from_task_records_provenance(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        source = task_for(spill, SAFE)
        task = db.escalate(spill.id, HR, actor="a", from_task_id=source.id)
        assert task.escalated_from_task_id == source.id
        assert task.escalated_from_department == SAFE

    def test_from_task_on_other_post_rejected(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        other = db.create_post("Customer Complaint", actor="a")
        foreign = task_for(other, QUAL)
        with pytest.raises(InvalidInputError):
            db.escalate(spill.id, HR, actor="a", from_task_id=foreign.id)

    def test_signoff_derived_from_snapshot(self, db: TaskFeedDB) -> None:
        post = db.create_post("Customer Complaint", actor="a", departments=[WARE])
        task = db.escalate(post.id, QUAL, actor="a")
        assert task.requires_signoff is True

    def test_signoff_override(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        task = db.escalate(spill.id, IT, actor="a", requires_signoff=True, priority="critical")
        assert task.requires_signoff is True
        assert task.priority == "critical"

    def test_events(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        source = task_for(spill, SAFE)
        task = db.escalate(spill.id, HR, actor="a", from_task_id=source.id, reason="Exposure")
        events = db.get_post_events(spill.id)
        escalated = [e for e in events if e["event_type"] == "escalated"]
        assert len(escalated) == 1
        assert escalated[0]["task_id"] == task.id
        assert escalated[0]["old_value"] == SAFE
        assert escalated[0]["new_value"] == HR
        assert escalated[0]["comment"] == "Exposure"
        assert events[-1]["event_type"] == "department_assigned"

    def test_escalation_into_active_hold_stays_active(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        db.escalate(spill.id, HR, actor="a")
        assert db.get_post(spill.id).hold_status == "active"

    def test_escalation_into_completed_non_hold_post(self, db: TaskFeedDB, task_for: TaskFor) -> None:
        post = db.create_post("Customer Complaint", actor="a")
        tid = task_for(post, QUAL).id
        db.complete_task(tid, actor="qa")
        db.sign_off_task(tid, actor="qa-manager")
        assert db.get_post(post.id).status == "completed"
        db.escalate(post.id, WARE, actor="qa-manager")
        reopened = db.get_post(post.id)
        assert reopened.status == "in_progress"
        assert reopened.hold_status == "none"


class TestEscalationRejections:
    def test_department_with_original_task(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        with pytest.raises(AlreadyAssignedError) as exc_info:
            db.escalate(spill.id, QUAL, actor="a")
        err = exc_info.value
        assert err.is_original is True
        assert err.existing_task_id == task_for(spill, QUAL).id
        assert err.kind == "already_assigned"

    def test_repeat_escalation_rejected_by_default(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        first = db.escalate(spill.id, HR, actor="a")
        with pytest.raises(AlreadyAssignedError) as exc_info:
            db.escalate(spill.id, HR, actor="a")
        assert exc_info.value.is_original is False
        assert exc_info.value.existing_task_id == first.id

    def test_repeat_escalation_allowed_by_policy(self, tmp_path: Path) -> None:
        d = make_db(tmp_path, config={"escalation_policy": "allow"})
        try:
            post = d.create_post("Customer Complaint", actor="a")
            d.escalate(post.id, HR, actor="a")
            d.escalate(post.id, HR, actor="b")
            hr_tasks = [t for t in d.get_detail(post.id).tasks if t.department_code == HR]
            assert len(hr_tasks) == 2
            assert d.get_post(post.id).total_departments == 3
            with pytest.raises(AlreadyAssignedError):
                d.escalate(post.id, QUAL, actor="a")
        finally:
            d.close()

    def test_unknown_post(self, db: TaskFeedDB) -> None:
        with pytest.raises(NotFoundError):
            db.escalate("test-missing", HR, actor="a")

    def test_bad_priority(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        with pytest.raises(InvalidInputError, match="priority"):
            db.escalate(spill.id, HR, actor="a", priority="urgent")  # type: ignore[arg-type]

    def test_bad_department(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        with pytest.raises(InvalidInputError):
            db.escalate(spill.id, "", actor="a")

    def test_rejection_writes_nothing(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        before = len(db.get_post_events(spill.id))
        with pytest.raises(AlreadyAssignedError):
            db.escalate(spill.id, QUAL, actor="a")
        assert len(db.get_post_events(spill.id)) == before
        assert db.get_post(spill.id).version == 1
