"""CLI subcommands, registered on the Typer app in ``actionforge.cli.app``."""
