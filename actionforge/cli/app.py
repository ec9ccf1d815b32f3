"""Main Typer application — imports and registers all CLI commands.

Entry point: ``actionforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from actionforge.cli.commands.check import check_cmd
from actionforge.cli.commands.runs import (
    artifacts_cmd,
    delete_cmd,
    download_cmd,
    latest_cmd,
    status_cmd,
)
from actionforge.cli.commands.submit import submit_cmd
from actionforge.config import ForgeSettings

app = typer.Typer(
    name="actionforge",
    help="actionforge: build source files with a repository's hosted CI and fetch the results.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="submit", help="Upload a file and follow the build it triggers.")(submit_cmd)
app.command(name="check", help="Verify token and repository access.")(check_cmd)
app.command(name="latest", help="Show the most recent workflow run.")(latest_cmd)
app.command(name="status", help="Show a workflow run's status.")(status_cmd)
app.command(name="artifacts", help="List a workflow run's artifacts.")(artifacts_cmd)
app.command(name="download", help="Download an artifact archive.")(download_cmd)
app.command(name="delete", help="Remove an uploaded file from the repository.")(delete_cmd)


@app.callback()
def configure_logging(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (defaults to ACTIONFORGE_LOG_LEVEL, then INFO).",
    ),
) -> None:
    """Route package logging through Rich."""
    level_name = (log_level or ForgeSettings().log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {level_name}", param_hint="--log-level")

    logger = logging.getLogger("actionforge")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(show_path=False, rich_tracebacks=True))
    logger.propagate = False


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
