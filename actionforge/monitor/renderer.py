"""Rich terminal renderer for submissions.

Color scheme
------------
- dim       : IDLE
- cyan      : UPLOADING / WAITING / DISCOVERING_RUN
- yellow    : MONITORING
- green     : COMPLETED
- red       : FAILED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from actionforge.core.access_probe import AccessReport
from actionforge.models.jobs import JobSnapshot, JobState, JobTransition
from actionforge.models.remote import Artifact, AutomationRun


# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[JobState, str] = {
    JobState.IDLE: "dim",
    JobState.UPLOADING: "cyan",
    JobState.WAITING: "cyan",
    JobState.DISCOVERING_RUN: "cyan",
    JobState.MONITORING: "bold yellow",
    JobState.COMPLETED: "bold green",
    JobState.FAILED: "bold red",
}

_STATE_LABELS: dict[JobState, str] = {
    JobState.IDLE: "Idle",
    JobState.UPLOADING: "Uploading file",
    JobState.WAITING: "Waiting for the workflow to start",
    JobState.DISCOVERING_RUN: "Looking for the workflow run",
    JobState.MONITORING: "Build in progress",
    JobState.COMPLETED: "Build completed",
    JobState.FAILED: "Build failed",
}


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


class JobRenderer:
    """Renders submission progress as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Transition subscriber
    # ------------------------------------------------------------------

    def on_transition(self, transition: JobTransition, snapshot: JobSnapshot) -> None:
        """``JobMachine`` listener: print one line per transition."""
        style = _STATE_STYLES.get(snapshot.state, "")
        label = _STATE_LABELS.get(snapshot.state, snapshot.state.value)
        line = Text.assemble(
            (f"[{transition.at.strftime('%H:%M:%S')}] ", "dim"),
            (label, style),
        )
        if snapshot.state is JobState.MONITORING and snapshot.run_id is not None:
            line.append(f"  run {snapshot.run_id}", style="dim")
        elif transition.detail and snapshot.state is not JobState.FAILED:
            line.append(f"  {transition.detail}", style="dim")
        self.console.print(line)

        if snapshot.failure is not None and snapshot.state in (JobState.FAILED, JobState.IDLE):
            self.console.print(f"  [red]{snapshot.failure.message}[/red]")

    # ------------------------------------------------------------------
    # Renderables
    # ------------------------------------------------------------------

    def render_summary(self, snapshot: JobSnapshot) -> Panel:
        """Final summary panel for a finished submission."""
        style = _STATE_STYLES.get(snapshot.state, "")
        parts: list[str] = [
            f"[bold]File:[/bold]      {snapshot.file_name or '-'}",
            f"[bold]State:[/bold]     [{style}]{snapshot.state.value}[/{style}]",
        ]
        if snapshot.run_id is not None:
            parts.append(f"[bold]Run:[/bold]       {snapshot.run_id} ({snapshot.run_status or '?'})")
        if snapshot.failure is not None:
            parts.append(f"[bold]Reason:[/bold]    [red]{snapshot.failure.message}[/red]")
        parts.append(f"[bold]Checks:[/bold]    {snapshot.attempts}/{snapshot.max_attempts}")
        if snapshot.source_deleted:
            parts.append("[bold]Source:[/bold]    [dim]removed from repository[/dim]")

        body: list = [Text.from_markup("\n".join(parts))]
        if snapshot.artifacts:
            body.extend([Text(""), self.render_artifacts(snapshot.artifacts)])

        border = "green" if snapshot.state is JobState.COMPLETED else "red"
        return Panel(Group(*body), title="[bold]Submission[/bold]", border_style=border, padding=(1, 2))

    def render_artifacts(self, artifacts: list[Artifact]) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=False)
        table.add_column("ID", style="dim", justify="right")
        table.add_column("Name", min_width=20)
        table.add_column("Size", justify="right")
        table.add_column("Status", justify="center")

        for artifact in artifacts:
            status = "[red]expired[/red]" if artifact.expired else "[green]available[/green]"
            table.add_row(
                str(artifact.id), artifact.name, _format_size(artifact.size_in_bytes), status
            )
        return table

    def render_run(self, run: AutomationRun) -> Table:
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        conclusion = run.conclusion or "-"
        if run.conclusion:
            color = "green" if run.succeeded else "red"
            conclusion = f"[{color}]{run.conclusion}[/{color}]"
        table.add_row("Run", str(run.id))
        table.add_row("Name", run.name or "-")
        table.add_row("Status", run.status)
        table.add_row("Conclusion", conclusion)
        table.add_row(
            "Created", run.created_at.strftime("%Y-%m-%d %H:%M:%S") if run.created_at else "-"
        )
        if run.html_url:
            table.add_row("URL", run.html_url)
        return table

    def render_access(self, report: AccessReport) -> Table:
        table = Table(title=f"Access to {report.repository}", header_style="bold cyan")
        table.add_column("Check", min_width=14)
        table.add_column("Result", justify="center")
        table.add_column("Details")
        for check in report.checks:
            if check.ok is None:
                result = "[dim]skipped[/dim]"
            elif check.ok:
                result = "[green]OK[/green]"
            else:
                result = "[bold red]FAILED[/bold red]"
            table.add_row(check.name, result, check.detail)
        return table

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_summary(self, snapshot: JobSnapshot) -> None:
        self.console.print(self.render_summary(snapshot))

    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")
