"""Fixtures for CLI interface tests."""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from taskfeed.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a taskfeed project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test", "--facility", "Plant 2"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _report(runner: CliRunner, *args: str) -> dict[str, object]:
    """Run ``report ... --json`` and return the created post."""
    result = runner.invoke(cli, ["report", *args, "--json"])
    assert result.exit_code == 0, result.output
    data: dict[str, object] = json.loads(result.output)
    return data


def _tasks(runner: CliRunner, post_id: str) -> dict[str, str]:
    """Map department code to task id for a post."""
    result = runner.invoke(cli, ["show", post_id, "--json"])
    assert result.exit_code == 0, result.output
    return {t["department_code"]: t["id"] for t in json.loads(result.output)["department_tasks"]}
