"""Run and artifact inspection commands.

``latest``, ``status``, ``artifacts``, ``download`` and ``delete`` each wrap
one ``ForgeService`` operation and print its outcome.  A failed outcome
prints the classified error and exits with code 1.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console

from actionforge.cli import session
from actionforge.core.errors import ForgeError
from actionforge.models.outcome import Outcome
from actionforge.monitor.renderer import JobRenderer
from actionforge.service import ForgeService

console = Console()

T = TypeVar("T")


def _call(operation: Callable[[ForgeService], Awaitable[Outcome[T]]]) -> T:
    """Run *operation* against a fresh service and unwrap its outcome."""
    settings = session.load_settings()

    async def _run() -> Outcome[T]:
        async with session.open_service(settings) as service:
            return await operation(service)

    outcome = asyncio.run(_run())
    if not outcome.ok:
        kind = outcome.error_kind.value if outcome.error_kind else "error"
        console.print(f"[bold red]Error ({kind}):[/bold red] {outcome.error}")
        raise typer.Exit(code=1)
    return outcome.value


def latest_cmd() -> None:
    """Show the most recently created workflow run."""
    run = _call(lambda service: service.get_latest_run())
    console.print(JobRenderer(console=console).render_run(run))


def status_cmd(run_id: int = typer.Argument(..., help="Workflow run ID.")) -> None:
    """Show the status and conclusion of a workflow run."""
    run = _call(lambda service: service.get_run_status(run_id))
    console.print(JobRenderer(console=console).render_run(run))


def artifacts_cmd(run_id: int = typer.Argument(..., help="Workflow run ID.")) -> None:
    """List the artifacts a workflow run produced."""
    artifacts = _call(lambda service: service.get_artifacts(run_id))
    if not artifacts:
        console.print(f"[dim]Run {run_id} produced no artifacts.[/dim]")
        return
    console.print(JobRenderer(console=console).render_artifacts(artifacts))


def download_cmd(
    artifact_id: int = typer.Argument(..., help="Artifact ID."),
    output: Path = typer.Option(
        Path("."), "--output", "-o", file_okay=False, help="Directory to save the archive into."
    ),
) -> None:
    """Download an artifact archive.  Expired artifacts are refused."""

    async def _fetch(service: ForgeService) -> Outcome[Any]:
        try:
            artifact = await service.tracker.artifact_metadata(artifact_id)
        except ForgeError as exc:
            return Outcome.failure(exc)
        payload = await service.download_artifact(artifact_id)
        if not payload.ok:
            return payload
        return Outcome.success((artifact.name, payload.value))

    name, payload = _call(_fetch)
    output.mkdir(parents=True, exist_ok=True)
    target = output / f"{name}.zip"
    target.write_bytes(payload)
    console.print(f"[green]Saved[/green] {target} ({len(payload)} bytes)")


def delete_cmd(name: str = typer.Argument(..., help="Name of the uploaded file.")) -> None:
    """Remove a previously uploaded file from the repository."""
    result = _call(lambda service: service.delete_file(name))
    console.print(f"[green]Deleted[/green] {result.path}")
