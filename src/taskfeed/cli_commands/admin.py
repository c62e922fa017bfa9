"""CLI commands for project setup and the template catalog: init, templates, template-info."""

from __future__ import annotations

from pathlib import Path

import click

from taskfeed.cli_common import emit_json, fail, get_db
from taskfeed.core import DB_FILENAME, TASKFEED_DIR_NAME, TaskFeedDB, read_config, write_config
from taskfeed.errors import NotFoundError


@click.command()
@click.option("--prefix", default="tf", help="ID prefix for posts (default: tf)")
@click.option("--facility", default="", help="Facility name stamped on new posts")
def init(prefix: str, facility: str) -> None:
    """Initialize .taskfeed/ in the current directory."""
    cwd = Path.cwd()
    taskfeed_dir = cwd / TASKFEED_DIR_NAME

    if taskfeed_dir.exists():
        click.echo(f"{TASKFEED_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        with TaskFeedDB(taskfeed_dir / DB_FILENAME, config=read_config(taskfeed_dir)) as db:
            db.initialize()
        return

    taskfeed_dir.mkdir()
    (taskfeed_dir / "templates").mkdir()
    write_config(taskfeed_dir, {"prefix": prefix, "version": 1, "facility": facility})

    with TaskFeedDB(taskfeed_dir / DB_FILENAME, config=read_config(taskfeed_dir)) as db:
        db.initialize()

    click.echo(f"Initialized {TASKFEED_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {taskfeed_dir / DB_FILENAME}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def templates(as_json: bool) -> None:
    """List incident templates in registration order."""
    with get_db() as db:
        tpls = db.templates.list_templates()
        if as_json:
            emit_json([tpl.to_dict() for tpl in tpls])
            return
        for tpl in tpls:
            hold = " [hold]" if tpl.is_production_hold else ""
            click.echo(f"  {tpl.id:<24} {tpl.name} ({len(tpl.assigned_departments)} depts){hold}")


@click.command("template-info")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def template_info(name: str, as_json: bool) -> None:
    """Show departments and suggested forms for a template (name is matched loosely)."""
    with get_db() as db:
        try:
            tpl = db.templates.lookup(name)
        except NotFoundError as e:
            fail(e, as_json=as_json)

        if as_json:
            emit_json({**tpl.to_dict(), "departments": tpl.describe_departments()})
            return

        click.echo(f"{tpl.name} ({tpl.id})")
        if tpl.description:
            click.echo(f"  {tpl.description}")
        click.echo(f"  Production hold: {'yes' if tpl.is_production_hold else 'no'}")
        click.echo(f"  Photo required: {'yes' if tpl.photo_required else 'no'}")
        click.echo("\n  Departments:")
        for dept in tpl.describe_departments():
            signoff = " (sign-off required)" if dept["requires_signoff"] else ""
            click.echo(f"    {dept['department_code']} {dept['department_name']}{signoff}")
            for form in dept["forms"]:
                req = " *" if form["required"] else ""
                click.echo(f"      - {form['form_type']}{req}")


def register(cli: click.Group) -> None:
    """Register admin commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(templates)
    cli.add_command(template_info)
