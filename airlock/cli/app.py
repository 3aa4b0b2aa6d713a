"""Main Typer application — imports and registers all CLI commands.

Entry point: ``airlock`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import typer

from airlock.cli.commands.admin import (
    list_cmd,
    promote_cmd,
    publish_cmd,
    rollback_cmd,
    rollout_cmd,
    status_cmd,
)
from airlock.cli.commands.serve import serve_cmd

app = typer.Typer(
    name="airlock",
    help="Airlock: over-the-air update server and admin client.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="serve", help="Run the update server.")(serve_cmd)
app.command(name="publish", help="Publish a new update.")(publish_cmd)
app.command(name="promote", help="Promote an update between channels.")(promote_cmd)
app.command(name="rollout", help="Change an update's rollout percentage.")(rollout_cmd)
app.command(name="rollback", help="Roll back to the previous update.")(rollback_cmd)
app.command(name="list", help="List a channel's update history.")(list_cmd)
app.command(name="status", help="Show the current update of every channel.")(status_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
