"""CLI commands for department tasks: escalate, start, complete, signoff."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

import click

from taskfeed.cli_common import emit_json, fail, get_db
from taskfeed.core import DepartmentTask
from taskfeed.errors import TaskFeedError

if TYPE_CHECKING:
    from taskfeed.db_base import Priority


def _echo_task(task: DepartmentTask, verb: str, *, as_json: bool) -> None:
    if as_json:
        emit_json(task.to_dict())
        return
    click.echo(f"{verb} {task.id} ({task.department_name}) on {task.post_number}: {task.status}")


@click.command()
@click.argument("post_id")
@click.argument("department_code")
@click.option("--reason", default="", help="Why the department is needed")
@click.option("--from-task", "from_task_id", default=None, help="Task that raised the escalation")
@click.option(
    "--priority",
    default="high",
    type=click.Choice(["low", "medium", "high", "critical", "emergency"]),
    help="Priority (default: high)",
)
@click.option(
    "--requires-signoff/--no-requires-signoff",
    "requires_signoff",
    default=None,
    help="Override sign-off requirement (default: from the template)",
)
@click.option("--expected-version", type=int, default=None, help="Fail if the post has changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def escalate(
    ctx: click.Context,
    post_id: str,
    department_code: str,
    reason: str,
    from_task_id: str | None,
    priority: str,
    requires_signoff: bool | None,
    expected_version: int | None,
    as_json: bool,
) -> None:
    """Pull another department into an incident."""
    with get_db() as db:
        try:
            task = db.escalate(
                post_id,
                department_code,
                actor=ctx.obj["actor"],
                reason=reason,
                from_task_id=from_task_id,
                priority=cast("Priority", priority),
                requires_signoff=requires_signoff,
                expected_version=expected_version,
            )
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_task(task, "Escalated", as_json=as_json)


@click.command()
@click.argument("task_id")
@click.option("--expected-version", type=int, default=None, help="Fail if the post has changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def start(ctx: click.Context, task_id: str, expected_version: int | None, as_json: bool) -> None:
    """Mark a department task in progress."""
    with get_db() as db:
        try:
            task = db.start_task(task_id, actor=ctx.obj["actor"], expected_version=expected_version)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_task(task, "Started", as_json=as_json)


@click.command()
@click.argument("task_id")
@click.option("--notes", default="", help="Completion notes")
@click.option("--form-type", default=None, help="Form filed to complete the task")
@click.option("--work-order", "work_order_id", default=None, help="Work order created for the task")
@click.option("--expected-version", type=int, default=None, help="Fail if the post has changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def complete(
    ctx: click.Context,
    task_id: str,
    notes: str,
    form_type: str | None,
    work_order_id: str | None,
    expected_version: int | None,
    as_json: bool,
) -> None:
    """Complete a department task."""
    with get_db() as db:
        try:
            task = db.complete_task(
                task_id,
                actor=ctx.obj["actor"],
                notes=notes,
                form_type=form_type,
                module_reference=("work_order", work_order_id) if work_order_id else None,
                expected_version=expected_version,
            )
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_task(task, "Completed", as_json=as_json)


@click.command()
@click.argument("task_id")
@click.option("--notes", default="", help="Sign-off notes")
@click.option("--expected-version", type=int, default=None, help="Fail if the post has changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def signoff(ctx: click.Context, task_id: str, notes: str, expected_version: int | None, as_json: bool) -> None:
    """Sign off a completed department task (must differ from the completer when sign-off is required)."""
    with get_db() as db:
        try:
            task = db.sign_off_task(task_id, actor=ctx.obj["actor"], notes=notes, expected_version=expected_version)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_task(task, "Signed off", as_json=as_json)


def register(cli: click.Group) -> None:
    """Register task commands with the CLI group."""
    cli.add_command(escalate)
    cli.add_command(start)
    cli.add_command(complete)
    cli.add_command(signoff)
