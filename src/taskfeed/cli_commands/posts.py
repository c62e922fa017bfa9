"""CLI commands for incident posts: report, manual, show, search, events, hold, holds."""

from __future__ import annotations

import sys

import click

from taskfeed.cli_common import emit_json, fail, get_db
from taskfeed.core import IncidentPost
from taskfeed.errors import InvalidInputError, TaskFeedError


def _parse_fields(field: tuple[str, ...], *, as_json: bool) -> dict[str, str]:
    form_data: dict[str, str] = {}
    for f in field:
        if "=" not in f:
            fail(InvalidInputError(f"Invalid field format: {f} (expected key=value)"), as_json=as_json)
        k, v = f.split("=", 1)
        form_data[k] = v
    return form_data


def _echo_created(post: IncidentPost, *, as_json: bool) -> None:
    if as_json:
        emit_json(post.to_dict())
        return
    click.echo(f"Created {post.post_number} ({post.id}): {post.template_name}")
    click.echo(f"  Departments: {post.total_departments}")
    if post.hold_status != "none":
        click.echo(f"  Production hold: {post.hold_status}")


@click.command()
@click.argument("template")
@click.option("--location", default="", help="Where it happened (falls back to location/area/room/where fields)")
@click.option("--facility", default="", help="Facility (default: from config)")
@click.option("--photo", "photo_url", default=None, help="Photo URL or path")
@click.option("--notes", default="", help="Free-text notes")
@click.option("--field", "-f", multiple=True, help="Form field as key=value (repeatable)")
@click.option("--department", "-d", "departments", multiple=True, help="Override departments (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def report(
    ctx: click.Context,
    template: str,
    location: str,
    facility: str,
    photo_url: str | None,
    notes: str,
    field: tuple[str, ...],
    departments: tuple[str, ...],
    as_json: bool,
) -> None:
    """Report an incident from a template and fan it out to departments."""
    form_data = _parse_fields(field, as_json=as_json)
    with get_db() as db:
        try:
            post = db.create_post(
                template,
                actor=ctx.obj["actor"],
                facility=facility,
                location=location,
                form_data=form_data or None,
                photo_url=photo_url,
                notes=notes,
                departments=list(departments) if departments else None,
            )
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_created(post, as_json=as_json)


@click.command()
@click.argument("title")
@click.option("--department", "-d", "departments", multiple=True, required=True, help="Department code (repeatable)")
@click.option(
    "--button-type",
    default="report_issue",
    type=click.Choice(["report_issue", "add_task", "request_purchase"]),
    help="Kind of post (default: report_issue)",
)
@click.option("--description", default="", help="What the post is about")
@click.option("--location", default="", help="Where it happened")
@click.option("--facility", default="", help="Facility (default: from config)")
@click.option("--photo", "photo_url", default=None, help="Photo URL or path")
@click.option("--notes", default="", help="Free-text notes")
@click.option("--field", "-f", multiple=True, help="Form field as key=value (repeatable)")
@click.option("--production-hold", is_flag=True, help="Hold production until every department resolves")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def manual(
    ctx: click.Context,
    title: str,
    departments: tuple[str, ...],
    button_type: str,
    description: str,
    location: str,
    facility: str,
    photo_url: str | None,
    notes: str,
    field: tuple[str, ...],
    production_hold: bool,
    as_json: bool,
) -> None:
    """Report an incident without a template, naming the departments directly."""
    form_data = _parse_fields(field, as_json=as_json)
    with get_db() as db:
        try:
            post = db.create_manual_post(
                title,
                departments=list(departments),
                actor=ctx.obj["actor"],
                button_type=button_type,
                description=description,
                facility=facility,
                location=location,
                form_data=form_data or None,
                photo_url=photo_url,
                notes=notes,
                is_production_hold=production_hold,
            )
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        _echo_created(post, as_json=as_json)


@click.command()
@click.argument("post_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(post_id: str, as_json: bool) -> None:
    """Show a post with its department tasks and linked work orders."""
    with get_db() as db:
        try:
            detail = db.get_detail(post_id)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json(detail.to_dict())
            return

        post = detail.post
        legacy = " [legacy]" if detail.source == "legacy" else ""
        click.echo(f"{post.post_number}: {post.template_name}{legacy}")
        click.echo(f"  Status:     {post.status}")
        click.echo(f"  Progress:   {post.completed_departments}/{post.total_departments} ({post.completion_rate:.0%})")
        click.echo(f"  Hold:       {post.hold_status}")
        if post.location:
            click.echo(f"  Location:   {post.location}")
        click.echo(f"  Reported:   {post.created_by} at {post.created_at}")
        click.echo("\n  Departments:")
        for task in detail.tasks:
            marker = "" if task.is_original else " (escalated)"
            signoff = " [sign-off]" if task.requires_signoff else ""
            click.echo(f"    {task.id}  {task.department_name:<20} {task.status}{signoff}{marker}")
        if detail.work_orders:
            click.echo("\n  Work orders:")
            for wo in detail.work_orders:
                click.echo(f"    {wo.work_order_number}  {wo.title} [{wo.status}]")


@click.command()
@click.argument("query", default="")
@click.option("--limit", default=20, type=int, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def search(query: str, limit: int, as_json: bool) -> None:
    """Search recent posts by number, template, location, or author."""
    with get_db() as db:
        try:
            results = db.search_posts(query, limit=limit)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json(results)
            return
        if not results:
            click.echo("No matching posts")
            return
        for r in results:
            click.echo(f"  {r['post_number']}  {r['template_name']:<24} {r['location']:<16} {r['status']}")


@click.command("events")
@click.argument("post_id")
@click.option("--limit", default=100, type=int, help="Max events")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def events_cmd(post_id: str, limit: int, as_json: bool) -> None:
    """Show the event history of a post, oldest first."""
    with get_db() as db:
        try:
            events = db.get_post_events(post_id, limit=limit)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json(events)
            return
        for ev in events:
            change = ""
            if ev["old_value"] or ev["new_value"]:
                change = f" {ev['old_value'] or ''} -> {ev['new_value'] or ''}"
            click.echo(f"  {ev['created_at']}  {ev['event_type']:<20} {ev['actor']}{change}")


@click.command()
@click.argument("post_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def hold(post_id: str, as_json: bool) -> None:
    """Show the production hold state of a post."""
    with get_db() as db:
        try:
            state = db.evaluate_hold(post_id)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json(state.to_dict())
            return
        blocking = "BLOCKING" if state.blocking else "not blocking"
        click.echo(f"{state.post_number}: hold {state.status} ({blocking})")


@click.command()
@click.option("--line", "production_line", default=None, help="Only holds on this production line")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def holds(production_line: str | None, as_json: bool) -> None:
    """List posts currently holding production. Exits 2 if the given line is blocked."""
    with get_db() as db:
        active = db.active_holds(production_line)
        if as_json:
            emit_json([h.to_dict() for h in active])
        elif not active:
            click.echo("No active holds" + (f" on {production_line}" if production_line else ""))
        else:
            for h in active:
                line = h.production_line or "-"
                click.echo(f"  {h.post_number}  {h.status:<10} line={line}  {h.location}")
        if production_line is not None and active:
            sys.exit(2)


def register(cli: click.Group) -> None:
    """Register post commands with the CLI group."""
    cli.add_command(report)
    cli.add_command(manual)
    cli.add_command(show)
    cli.add_command(search)
    cli.add_command(events_cmd)
    cli.add_command(hold)
    cli.add_command(holds)
