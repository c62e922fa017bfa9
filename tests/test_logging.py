"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from taskfeed.logging import setup_logging
from tests._db_factory import make_db


@pytest.fixture(autouse=True)
def _reset_taskfeed_logger() -> Generator[None, None, None]:
    yield
    logger = logging.getLogger("taskfeed")
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()


def _records(tmp_path: Path) -> list[dict[str, object]]:
    for handler in logging.getLogger("taskfeed").handlers:
        handler.flush()
    lines = (tmp_path / "taskfeed.log").read_text().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"op": "create_post", "post_id": "tf-abc"})
        record = _records(tmp_path)[-1]
        assert record["msg"] == "test_message"
        assert record["level"] == "INFO"
        assert record["op"] == "create_post"
        assert record["post_id"] == "tf-abc"

    def test_json_format(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("formatted", extra={"op": "escalate", "duration_ms": 42.5})
        record = _records(tmp_path)[-1]
        assert record["duration_ms"] == 42.5
        assert "post_id" not in record

    def test_exception_is_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.warning("failed", exc_info=True)
        assert _records(tmp_path)[-1]["exception"] == "boom"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_switching_directory_replaces_handler(self, tmp_path: Path) -> None:
        first, second = tmp_path / "a", tmp_path / "b"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename == os.path.abspath(str(second / "taskfeed.log"))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            setup_logging(tmp_path)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(logging.getLogger("taskfeed").handlers) == 1


class TestOperationLogging:
    def test_write_logs_op_and_duration(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        db = make_db(tmp_path)
        post = db.create_post("Customer Complaint", actor="alice")
        db.close()
        committed = [r for r in _records(tmp_path) if r.get("op") == "create_post" and "duration_ms" in r]
        assert committed
        assert isinstance(committed[-1]["duration_ms"], (int, float))
        created = [r for r in _records(tmp_path) if r["msg"].startswith("Created post")]  # type: ignore[union-attr]
        assert created[-1]["post_id"] == post.id
