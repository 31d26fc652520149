"""CLI commands for creating and listing dumps."""

from __future__ import annotations

import typer
from rich.table import Table

from dumpguard.cli.common import console, handle_errors, load_app_config


def export_dump(
        ctx: typer.Context,
        file: str | None = typer.Option(
            None, "--file", "-f", help="File name of the dump inside the base directory."
        ),
        connection: str | None = typer.Option(
            None, "--connection", "-c", help="Configured connection to dump."
        ),
        no_data: bool = typer.Option(
            False, "--no-data", help="Dump the schema only."
        ),
) -> None:
    """Create a dump of the configured database.

    Examples:
        dumpguard export
        dumpguard export --connection reporting --no-data
        dumpguard export --file before-migration.sql
    """
    from dumpguard.core.engine import DumpEngine

    config = load_app_config(ctx)
    engine = DumpEngine(config, connection)

    with handle_errors():
        with console.status("[bold blue]Creating dump..."):
            path = engine.create_dump(file, no_data=no_data)

    console.print(f"[bold green]✓ Dump created:[/bold green] {path}")


def list_dumps(
        ctx: typer.Context,
        ignore_connection_filter: bool = typer.Option(
            False, "--ignore-connection-filter", "-i",
            help="List every file, ignoring the connection stored in its metadata.",
        ),
) -> None:
    """List the dumps available in the base directory, newest first."""
    from dumpguard.core.engine import DumpEngine
    from dumpguard.selection import FileSelectionResolver

    config = load_app_config(ctx)
    engine = DumpEngine(config)
    resolver = FileSelectionResolver(engine, ignore_connection_filter=ignore_connection_filter)

    with handle_errors():
        candidates = resolver.candidates()

    if not candidates:
        console.print("[yellow]No dumps found.[/yellow]")
        return

    table = Table(title="Available Dumps", show_lines=True)
    table.add_column("File", style="cyan")
    table.add_column("Connection", style="blue")
    table.add_column("Database")
    table.add_column("Dumped At", style="magenta")
    table.add_column("Git", style="green")
    table.add_column("Size", justify="right")

    for c in candidates:
        git = f"{c.git_branch}@{c.git_revision[:8]}" if c.git_revision else c.git_branch
        table.add_row(
            c.file,
            c.connection,
            c.database,
            (c.dumped_at or c.modified_time).strftime("%Y-%m-%d %H:%M:%S"),
            git,
            c.size_human,
        )

    console.print(table)
