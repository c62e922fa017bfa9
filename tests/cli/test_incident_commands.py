"""CLI tests for the incident lifecycle: report, show, escalate, task moves, holds."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from taskfeed.cli import cli
from tests.cli.conftest import _report, _tasks


def _spill(runner: CliRunner) -> dict[str, object]:
    return _report(
        runner,
        "spill",
        "--photo",
        "spill.jpg",
        "--location",
        "Mixing Room",
        "--field",
        "production_line=Line 3",
    )


class TestInit:
    def test_creates_layout(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        _, root = cli_in_project
        taskfeed_dir = root / ".taskfeed"
        assert (taskfeed_dir / "taskfeed.db").exists()
        assert (taskfeed_dir / "templates").is_dir()
        config = json.loads((taskfeed_dir / "config.json").read_text())
        assert config["prefix"] == "test"
        assert config["facility"] == "Plant 2"

    def test_second_init_is_harmless(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_commands_need_a_project(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        with cli_runner.isolated_filesystem(temp_dir=tmp_path):
            result = cli_runner.invoke(cli, ["templates"])
        assert result.exit_code == 1
        assert "taskfeed init" in result.output


class TestTemplates:
    def test_list(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["templates"])
        assert result.exit_code == 0
        assert "chemical_spill" in result.output
        assert "[hold]" in result.output

    def test_list_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        data = json.loads(runner.invoke(cli, ["templates", "--json"]).output)
        assert len(data) == 10
        assert data[0]["id"] == "foreign_material"

    def test_info_fuzzy(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["template-info", "spill"])
        assert result.exit_code == 0
        assert "Chemical Spill (chemical_spill)" in result.output
        assert "1005 Safety (sign-off required)" in result.output

    def test_info_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        data = json.loads(runner.invoke(cli, ["template-info", "Chemical Spill", "--json"]).output)
        signoff = {d["department_code"]: d["requires_signoff"] for d in data["departments"]}
        assert signoff["1002"] is True
        assert signoff["1003"] is False

    def test_info_unknown(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["template-info", "volcano", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "not_found"


class TestReport:
    def test_report_and_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post = _spill(runner)
        assert post["total_departments"] == 5
        assert post["hold_status"] == "active"
        assert post["production_line"] == "Line 3"
        assert post["facility"] == "Plant 2"
        result = runner.invoke(cli, ["show", str(post["id"])])
        assert result.exit_code == 0
        assert "Progress:   0/5" in result.output
        assert "[sign-off]" in result.output

    def test_text_output(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["report", "Customer Complaint"])
        assert result.exit_code == 0
        assert result.output.startswith("Created TF-")
        assert "Production hold" not in result.output

    def test_department_override(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post = _report(runner, "Customer Complaint", "-d", "1004", "-d", "1008")
        assert sorted(_tasks(runner, str(post["id"]))) == ["1004", "1008"]

    def test_missing_photo(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["report", "Chemical Spill", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "invalid_input"

    def test_bad_field(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["report", "Customer Complaint", "--field", "novalue"])
        assert result.exit_code == 1
        assert "key=value" in result.output

    def test_show_unknown(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "nope"])
        assert result.exit_code == 1
        assert "Error [not_found]" in result.output


class TestManual:
    def test_manual_post(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        r = runner.invoke(cli, ["manual", "Roof leak", "-d", "1001", "-d", "1002", "--location", "Packing", "--json"])
        assert r.exit_code == 0, r.output
        post = json.loads(r.output)
        assert post["template_id"] == "manual"
        assert post["template_name"] == "Roof leak"
        assert post["location"] == "Packing"
        assert sorted(_tasks(runner, str(post["id"]))) == ["1001", "1002"]

    def test_production_hold_flag(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        r = runner.invoke(cli, ["manual", "Guard missing", "-d", "1001", "--production-hold"])
        assert r.exit_code == 0, r.output
        assert "Production hold: active" in r.output

    def test_department_required(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        r = runner.invoke(cli, ["manual", "Nobody"])
        assert r.exit_code == 2

    def test_blank_title(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        r = runner.invoke(cli, ["manual", " ", "-d", "1001", "--json"])
        assert r.exit_code == 1
        assert json.loads(r.output)["code"] == "invalid_input"


class TestWorkflow:
    def test_spill_through_to_reinstated_hold(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post_id = str(_spill(runner)["id"])
        tasks = _tasks(runner, post_id)

        for code in ("1004", "1001", "1003", "1005", "1002"):
            r = runner.invoke(cli, ["--actor", "worker", "complete", tasks[code]])
            assert r.exit_code == 0, r.output

        r = runner.invoke(cli, ["--actor", "worker", "signoff", tasks["1005"], "--json"])
        assert r.exit_code == 1
        assert json.loads(r.output)["code"] == "invalid_transition"

        for code in ("1005", "1002"):
            r = runner.invoke(cli, ["--actor", "manager", "signoff", tasks[code]])
            assert r.exit_code == 0, r.output

        state = json.loads(runner.invoke(cli, ["hold", post_id, "--json"]).output)
        assert state["status"] == "cleared"
        assert state["blocking"] is False

        r = runner.invoke(cli, ["--actor", "manager", "escalate", post_id, "1006", "--reason", "Exposure", "--json"])
        assert r.exit_code == 0, r.output
        assert json.loads(r.output)["is_original"] is False

        state = json.loads(runner.invoke(cli, ["hold", post_id, "--json"]).output)
        assert state["status"] == "reinstated"

        r = runner.invoke(cli, ["holds", "--line", "Line 3"])
        assert r.exit_code == 2
        assert "reinstated" in r.output

    def test_start_then_complete_with_work_order(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post_id = str(_spill(runner)["id"])
        tid = _tasks(runner, post_id)["1001"]
        assert runner.invoke(cli, ["start", tid]).exit_code == 0
        r = runner.invoke(cli, ["complete", tid, "--work-order", "wo-1", "--form-type", "emergencywo", "--json"])
        data = json.loads(r.output)
        assert data["status"] == "completed"
        assert data["module_reference_type"] == "work_order"
        assert data["module_reference_id"] == "wo-1"

    def test_escalate_existing_department(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post_id = str(_spill(runner)["id"])
        r = runner.invoke(cli, ["escalate", post_id, "1004"])
        assert r.exit_code == 1
        assert "Error [already_assigned]" in r.output

    def test_stale_expected_version(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post_id = str(_spill(runner)["id"])
        runner.invoke(cli, ["start", _tasks(runner, post_id)["1004"]])
        r = runner.invoke(cli, ["escalate", post_id, "1006", "--expected-version", "1", "--json"])
        assert r.exit_code == 1
        payload = json.loads(r.output)
        assert payload["code"] == "conflict"
        assert payload["retryable"] is True

    def test_holds_without_line_exits_zero(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _spill(runner)
        r = runner.invoke(cli, ["holds", "--json"])
        assert r.exit_code == 0
        assert len(json.loads(r.output)) == 1

    def test_clear_line(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        r = runner.invoke(cli, ["holds", "--line", "Line 9"])
        assert r.exit_code == 0
        assert "No active holds on Line 9" in r.output

    def test_events(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        post_id = str(_spill(runner)["id"])
        data = json.loads(runner.invoke(cli, ["events", post_id, "--json"]).output)
        assert data[0]["event_type"] == "post_created"
        assert data[-1]["event_type"] == "hold_activated"
        assert data[0]["actor"] == "cli"
