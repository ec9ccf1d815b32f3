"""``actionforge check`` — verify the token can reach the configured repository."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from actionforge.cli import session
from actionforge.config import ForgeSettings
from actionforge.core.access_probe import AccessReport
from actionforge.monitor.renderer import JobRenderer

console = Console()


def check_cmd() -> None:
    """Probe authentication, repository and contents access in order."""
    settings = session.load_settings()
    report = asyncio.run(_probe(settings))
    console.print(JobRenderer(console=console).render_access(report))
    if not report.ok:
        raise typer.Exit(code=1)


async def _probe(settings: ForgeSettings) -> AccessReport:
    async with session.open_service(settings) as service:
        return await service.check_access()
