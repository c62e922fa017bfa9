"""Shared pytest fixtures for taskfeed tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from taskfeed.core import DB_FILENAME, TASKFEED_DIR_NAME, TaskFeedDB, write_config
from tests._db_factory import make_db


@pytest.fixture
def db(tmp_path: Path) -> Generator[TaskFeedDB, None, None]:
    """Fresh TaskFeedDB for each test."""
    d = make_db(tmp_path)
    yield d
    d.close()


@pytest.fixture
def taskfeed_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a taskfeed project (.taskfeed/ with config + db).

    Returns the project root (parent of .taskfeed/).
    """
    taskfeed_dir = tmp_path / TASKFEED_DIR_NAME
    taskfeed_dir.mkdir()
    (taskfeed_dir / "templates").mkdir()
    write_config(taskfeed_dir, {"prefix": "proj", "version": 1, "facility": "Plant 2"})

    d = TaskFeedDB(taskfeed_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
