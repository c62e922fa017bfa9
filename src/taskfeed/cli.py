"""CLI for the taskfeed incident workflow engine.

Convention-based: discovers .taskfeed/ by walking up from cwd.

Usage:
    taskfeed init --facility "Plant 2"                 # Initialize .taskfeed/ in cwd
    taskfeed templates                                 # List incident templates
    taskfeed template-info "Chemical Spill"            # Departments and forms for a template
    taskfeed report "Chemical Spill" --photo p.jpg     # Report an incident
    taskfeed show <post-id>                            # Post, tasks, work orders
    taskfeed escalate <post-id> 1005 --reason "..."    # Pull in another department
    taskfeed start|complete|signoff <task-id>          # Move a department task
    taskfeed hold <post-id>                            # Hold state of one post
    taskfeed holds --line "Line 3"                     # Active production holds
    taskfeed search "spill"                            # Search recent posts
    taskfeed work-orders <post-id>                     # Linked work orders
    taskfeed link ncr <form-id> <post-id>              # File a form as evidence
    taskfeed unlink ncr <form-id>                      # Remove that link
    taskfeed events <post-id>                          # Event history
"""

from __future__ import annotations

import click

from taskfeed import __version__
from taskfeed.cli_commands import admin, links, posts, tasks


@click.group()
@click.version_option(version=__version__, prog_name="taskfeed")
@click.option("--actor", default="cli", help="Actor identity recorded on every change (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Taskfeed — multi-department incident workflow engine."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor


for _module in (admin, posts, tasks, links):
    _module.register(cli)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
