"""Tests for work-order resolution and form evidence links."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from taskfeed.core import DepartmentTask, IncidentPost, TaskFeedDB
from taskfeed.errors import InvalidInputError, NotFoundError
from taskfeed.templates_data import MAINT
from tests._db_factory import drop_work_orders_table, insert_verification

TaskFor = Callable[[IncidentPost, str], DepartmentTask]


class TestResolveWorkOrders:
    def test_none_linked(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        assert db.resolve_work_orders(spill.id) == []

    def test_by_task_module_reference(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        wo = db.record_work_order("Replace valve", department=MAINT)
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("work_order", wo.id))
        assert [w.id for w in db.resolve_work_orders(spill.id)] == [wo.id]

    def test_by_source_id(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        wo = db.record_work_order("Clean drain", source_type="incident", source_id=spill.id)
        assert [w.id for w in db.resolve_work_orders(spill.id)] == [wo.id]

    def test_by_post_number_in_description(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        wo = db.record_work_order("Inspect mixer", description=f"Follow-up for {spill.post_number}")
        assert [w.id for w in db.resolve_work_orders(spill.id)] == [wo.id]

    def test_deduplicated_in_route_order(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        by_source = db.record_work_order("Sourced", source_id=spill.id)
        both = db.record_work_order("Both", source_id=spill.id, description=spill.post_number)
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("work_order", both.id))
        ids = [w.id for w in db.resolve_work_orders(spill.id)]
        assert ids == [both.id, by_source.id]

    def test_task_and_legacy_routes_deduplicated(
        self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor
    ) -> None:
        shared = db.record_work_order("Replace valve")
        legacy_only = db.record_work_order("Legacy follow-up")
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("work_order", shared.id))
        insert_verification(db, "tv-1", source_id=spill.id, work_order_id=shared.id)
        insert_verification(
            db, "tv-2", source_id=spill.id, work_order_id=legacy_only.id, created_at="2025-01-01T00:00:00+00:00"
        )
        assert [w.id for w in db.resolve_work_orders(spill.id)] == [shared.id, legacy_only.id]

    def test_maintenance_module_absent(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("work_order", "wo-1"))
        drop_work_orders_table(db)
        detail = db.get_detail(spill.id)
        assert detail.source == "canonical"
        assert detail.work_orders == []

    def test_dangling_reference_skipped(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("work_order", "wo-gone"))
        assert db.resolve_work_orders(spill.id) == []

    def test_other_reference_types_ignored(self, db: TaskFeedDB, spill: IncidentPost, task_for: TaskFor) -> None:
        wo = db.record_work_order("Unrelated")
        db.complete_task(task_for(spill, MAINT).id, actor="tech", module_reference=("purchase_request", wo.id))
        assert db.resolve_work_orders(spill.id) == []

    def test_legacy_verification_work_order(self, db: TaskFeedDB) -> None:
        wo = db.record_work_order("Legacy fix")
        insert_verification(db, "tv-1", work_order_id=wo.id)
        detail = db.get_detail("tv-1")
        assert [w.id for w in detail.work_orders] == [wo.id]
        assert detail.tasks[0].module_reference_id == wo.id

    def test_unknown_post(self, db: TaskFeedDB) -> None:
        with pytest.raises(NotFoundError):
            db.resolve_work_orders("missing")


class TestRecordWorkOrder:
    def test_number_defaults_from_id(self, db: TaskFeedDB) -> None:
        wo = db.record_work_order("  Fix it  ")
        assert wo.title == "Fix it"
        assert wo.work_order_number == wo.id.upper()
        assert wo.id.startswith("test-wo-")
        assert wo.status == "open"

    def test_empty_title(self, db: TaskFeedDB) -> None:
        with pytest.raises(InvalidInputError):
            db.record_work_order("   ")


class TestFormLinks:
    def test_link_and_read_back(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        link = db.link_form("ncr", "ncr-42", spill.id, actor="qa")
        assert link.post_number == spill.post_number
        assert link.linked_by == "qa"
        stored = db.get_form_link("ncr", "ncr-42")
        assert stored == link

    def test_relink_replaces(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        other = db.create_post("Customer Complaint", actor="a")
        db.link_form("ncr", "ncr-42", spill.id, actor="qa")
        db.link_form("ncr", "ncr-42", other.id, actor="qa")
        stored = db.get_form_link("ncr", "ncr-42")
        assert stored is not None
        assert stored.post_id == other.id
        assert db.conn.execute("SELECT COUNT(*) FROM form_links").fetchone()[0] == 1

    def test_toggle_off(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        db.link_form("ncr", "ncr-42", spill.id, actor="qa")
        assert db.clear_form_link("ncr", "ncr-42") is True
        assert db.get_form_link("ncr", "ncr-42") is None
        assert db.clear_form_link("ncr", "ncr-42") is False

    def test_link_does_not_touch_post(self, db: TaskFeedDB, spill: IncidentPost) -> None:
        db.link_form("ncr", "ncr-42", spill.id, actor="qa")
        assert db.get_post(spill.id).version == spill.version

    def test_link_to_legacy_record(self, db: TaskFeedDB) -> None:
        insert_verification(db, "tv-1", source_number="TV-OLD")
        link = db.link_form("deviation", "dev-1", "tv-1", actor="qa")
        assert link.post_number == "TV-OLD"

    def test_link_unknown_post(self, db: TaskFeedDB) -> None:
        with pytest.raises(NotFoundError):
            db.link_form("ncr", "ncr-1", "missing", actor="qa")

    @pytest.mark.parametrize(("form_type", "form_id"), [("", "x"), ("ncr", ""), ("  ", "  ")])
    def test_blank_keys(self, db: TaskFeedDB, spill: IncidentPost, form_type: str, form_id: str) -> None:
        with pytest.raises(InvalidInputError):
            db.link_form(form_type, form_id, spill.id, actor="qa")
