"""CLI interface for meeting-scout.

Modular CLI structure with command groups split by functionality.
"""

import logging

import click
from dotenv import load_dotenv

from meeting_scout import __version__

# Load environment variables from .env file
load_dotenv(override=True)

logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    help="Show the meeting-scout version and exit.",
)
@click.pass_context
def main(ctx: click.Context, version: bool) -> None:
    """meeting-scout - find new municipal meeting recordings.

    \b
      meeting-scout discover next          Print the oldest unprocessed video ID
      meeting-scout discover scan          Run the batch scanner over an ID range
      meeting-scout discover state         Show the persisted scan checkpoint
      meeting-scout discover departments   List configured departments
    """
    if version:
        click.echo(__version__)
        ctx.exit()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def register_commands() -> None:
    """Register all command groups with the main CLI."""
    from meeting_scout.cli.discover import discover

    main.add_command(discover)


# Register commands at import time
register_commands()

__all__ = ["main"]
