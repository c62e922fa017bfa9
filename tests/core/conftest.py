"""Fixtures for core DB tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from taskfeed.core import DepartmentTask, IncidentPost, TaskFeedDB


@pytest.fixture
def spill(db: TaskFeedDB) -> IncidentPost:
    """A Chemical Spill on Line 3: five departments, production hold active."""
    return db.create_post(
        "Chemical Spill",
        actor="reporter",
        location="Mixing Room",
        form_data={"production_line": "Line 3"},
        photo_url="photos/spill.jpg",
    )


@pytest.fixture
def task_for(db: TaskFeedDB) -> Callable[[IncidentPost, str], DepartmentTask]:
    """Look up the (first) task of a department on a post."""

    def _lookup(post: IncidentPost, department_code: str) -> DepartmentTask:
        return next(t for t in db.get_detail(post.id).tasks if t.department_code == department_code)

    return _lookup
