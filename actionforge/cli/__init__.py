"""actionforge CLI — Typer application with Rich output."""
