"""CLI commands for cross-module links: work-orders, link, unlink."""

from __future__ import annotations

import click

from taskfeed.cli_common import emit_json, fail, get_db
from taskfeed.errors import TaskFeedError


@click.command("work-orders")
@click.argument("post_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def work_orders(post_id: str, as_json: bool) -> None:
    """List work orders linked to a post by any route."""
    with get_db() as db:
        try:
            found = db.resolve_work_orders(post_id)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json([wo.to_dict() for wo in found])
            return
        if not found:
            click.echo("No linked work orders")
            return
        for wo in found:
            click.echo(f"  {wo.work_order_number}  {wo.title} [{wo.status}, {wo.priority}]")


@click.command()
@click.argument("form_type")
@click.argument("form_id")
@click.argument("post_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def link(ctx: click.Context, form_type: str, form_id: str, post_id: str, as_json: bool) -> None:
    """Link a filed form to a post as evidence."""
    with get_db() as db:
        try:
            form_link = db.link_form(form_type, form_id, post_id, actor=ctx.obj["actor"])
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json(form_link.to_dict())
            return
        click.echo(f"Linked {form_link.form_type} {form_link.form_id} to {form_link.post_number}")


@click.command()
@click.argument("form_type")
@click.argument("form_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def unlink(form_type: str, form_id: str, as_json: bool) -> None:
    """Remove a form's link."""
    with get_db() as db:
        try:
            removed = db.clear_form_link(form_type, form_id)
        except TaskFeedError as e:
            fail(e, as_json=as_json)
        if as_json:
            emit_json({"form_type": form_type, "form_id": form_id, "removed": removed})
            return
        if removed:
            click.echo(f"Unlinked {form_type} {form_id}")
        else:
            click.echo(f"{form_type} {form_id} was not linked")


def register(cli: click.Group) -> None:
    """Register link commands with the CLI group."""
    cli.add_command(work_orders)
    cli.add_command(link)
    cli.add_command(unlink)
