"""Shared CLI helpers.

Provides ``get_db()`` and the error/JSON output helpers so that both the main
``cli.py`` and ``cli_commands/*.py`` modules can use them without circular
imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from taskfeed.core import (
    DB_FILENAME,
    TASKFEED_DIR_NAME,
    TaskFeedDB,
    find_taskfeed_root,
    read_config,
)
from taskfeed.errors import TaskFeedError
from taskfeed.logging import setup_logging


def get_db() -> TaskFeedDB:
    """Discover .taskfeed/ and return an initialized TaskFeedDB."""
    try:
        taskfeed_dir = find_taskfeed_root()
    except FileNotFoundError:
        click.echo(f"No {TASKFEED_DIR_NAME}/ found. Run 'taskfeed init' first.", err=True)
        sys.exit(1)
    setup_logging(taskfeed_dir)
    config = read_config(taskfeed_dir)
    db = TaskFeedDB(taskfeed_dir / DB_FILENAME, config=config)
    db.initialize()
    return db


def fail(exc: TaskFeedError, *, as_json: bool) -> NoReturn:
    """Report a typed failure and exit 1."""
    if as_json:
        click.echo(json_mod.dumps(exc.to_dict(), indent=2))
    else:
        click.echo(f"Error [{exc.kind}]: {exc.message}", err=True)
    sys.exit(1)


def emit_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))
