"""Settings and service construction shared by every CLI command."""

from __future__ import annotations

import typer
from rich.console import Console

from actionforge.config import ForgeSettings
from actionforge.core.errors import ConfigurationError
from actionforge.service import ForgeService

console = Console()


def load_settings() -> ForgeSettings:
    """Read settings from the environment and exit with code 1 if incomplete."""
    settings = ForgeSettings()
    try:
        settings.require_credentials()
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc
    return settings


def open_service(settings: ForgeSettings) -> ForgeService:
    return ForgeService.from_settings(settings)
