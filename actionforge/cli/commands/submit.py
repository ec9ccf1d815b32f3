"""``actionforge submit FILE`` — upload a source file and follow its build.

Uploads the file, waits for the workflow run it triggers, polls it to
completion and lists the resulting artifacts.  With ``--download`` every
available artifact is saved as ``<name>.zip`` in the given directory.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from actionforge.cli import session
from actionforge.config import ForgeSettings
from actionforge.models.jobs import JobSnapshot, JobState
from actionforge.monitor.renderer import JobRenderer

console = Console()


def submit_cmd(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Source file to upload and build.",
    ),
    no_cleanup: bool = typer.Option(
        False,
        "--no-cleanup",
        help="Leave the uploaded file in the repository after a successful build.",
    ),
    download: Optional[Path] = typer.Option(
        None,
        "--download",
        "-d",
        file_okay=False,
        help="Directory to save the build artifacts into.",
    ),
) -> None:
    """Upload FILE, follow the triggered build and report its artifacts."""
    settings = session.load_settings()
    if no_cleanup:
        settings = settings.model_copy(update={"cleanup_source": False})

    renderer = JobRenderer(console=console)
    try:
        snapshot = asyncio.run(_run_submission(settings, file, download, renderer))
    except KeyboardInterrupt:
        console.print(
            "[yellow]Cancelled.[/yellow] The uploaded file and the remote run were left as they are."
        )
        raise typer.Exit(code=130)

    if snapshot.state is not JobState.COMPLETED:
        raise typer.Exit(code=1)


async def _run_submission(
    settings: ForgeSettings,
    file: Path,
    download_dir: Path | None,
    renderer: JobRenderer,
) -> JobSnapshot:
    async with session.open_service(settings) as service:
        orchestrator = service.orchestrator()
        orchestrator.subscribe(renderer.on_transition)

        source = service.gateway.local_file(file.name, file.read_bytes())
        snapshot = await orchestrator.submit(source)
        renderer.print_summary(snapshot)

        if download_dir is not None and snapshot.state is JobState.COMPLETED:
            download_dir.mkdir(parents=True, exist_ok=True)
            for artifact in snapshot.downloadable_artifacts:
                outcome = await service.download_artifact(artifact.id)
                if not outcome.ok:
                    renderer.print_error(outcome.error or "download failed")
                    continue
                target = download_dir / f"{artifact.name}.zip"
                target.write_bytes(outcome.value)
                console.print(f"[green]Saved[/green] {target}")
        return snapshot
