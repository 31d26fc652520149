"""CLI command for importing a local or remote dump."""

from __future__ import annotations

from pathlib import Path

import click
import typer

from dumpguard.cli.common import console, handle_errors, load_app_config
from dumpguard.core.engine import DumpEngine
from dumpguard.core.exceptions import DumpNotFoundError, InvalidEnvironmentError
from dumpguard.core.models import ImportOptions
from dumpguard.selection import FileSelectionResolver

DOWNLOAD_REMOTE_DUMP = "Download remote dump"
IMPORT_EXISTING_LOCAL_DUMP = "Import existing local dump"


def _choose(question: str, options: list[str]) -> str:
    return typer.prompt(question, type=click.Choice(options), default=options[0])


def _user_wants_remote_dump() -> bool:
    answer = _choose(
        "Do you want to download and import a fresh dump from the server or an existing local dump?",
        [DOWNLOAD_REMOTE_DUMP, IMPORT_EXISTING_LOCAL_DUMP],
    )
    return answer == DOWNLOAD_REMOTE_DUMP


def _download(engine: DumpEngine, flush: bool) -> str:
    base_path = engine.disk.path(engine.get_base_directory())
    console.print(f"<<< Downloading dump from remote server to directory: [yellow]{base_path}[/yellow]")

    with handle_errors("Error retrieving dump from remote server: "):
        with console.status("[bold blue]Downloading..."):
            path = engine.get_remote_dump()

    if flush:
        engine.flush(path)
        console.print(f"[yellow]Deleted all old files in {base_path}[/yellow]")

    console.print(f">>> Successfully retrieved remote dump from {engine.config.remote.server_url}")
    return path


def _choose_dump(engine: DumpEngine, connection: str | None, ignore_filter: bool) -> str:
    resolver = FileSelectionResolver(engine, ignore_connection_filter=ignore_filter)

    def choose_connection(names: list[str]) -> str:
        return _choose("Import dump for which connection?", names)

    def choose_file(files: list[str]) -> str:
        return _choose("Which file do you want to import?", files)

    result = resolver.resolve(connection, choose_connection, choose_file)
    if result.auto_selected and result.selected is not None:
        console.print(f'Using file "{result.selected.path}" because there are no other dumps.')
    if result.selected is None:
        raise DumpNotFoundError("Found no file to import")
    return result.selected.path


def import_dump(
        ctx: typer.Context,
        dump: str | None = typer.Option(
            None, "--dump", "-d", help="File name of a dump in the base directory."
        ),
        file: Path | None = typer.Option(
            None, "--file", "-f", help="Absolute path of the dump to import."
        ),
        connection: str | None = typer.Option(
            None, "--connection", "-c", help="Configured connection to import into."
        ),
        allow_production: bool = typer.Option(
            False, "--allow-production", help="Allow importing on a production system."
        ),
        force: bool = typer.Option(
            False, "--force",
            help="Import without asking. Requires --dump, --file, --remote or --latest.",
        ),
        ignore_connection_filter: bool = typer.Option(
            False, "--ignore-connection-filter", "-i",
            help="Offer every dump, not only those created through configured connections.",
        ),
        remote: bool = typer.Option(
            False, "--remote", "-r", help="Pull a fresh dump from the remote server."
        ),
        flush: bool = typer.Option(
            False, "--flush", help="Delete all other dumps after a remote download."
        ),
        latest: bool = typer.Option(
            False, "--latest", "-l", help="Import the most recent dump in the base directory."
        ),
        migrate: bool = typer.Option(
            False, "--migrate", "-m", help="Run the migration command after the import."
        ),
        no_wipe: bool = typer.Option(
            False, "--no-wipe", help="Load the dump without dropping the database first."
        ),
) -> None:
    """Import a local or remote database dump.

    Examples:
        dumpguard import --remote --flush
        dumpguard import --latest --force
        dumpguard import --file /tmp/shop.sql --connection shop --migrate
    """
    config = load_app_config(ctx)

    with handle_errors():
        if config.is_production and not allow_production:
            raise InvalidEnvironmentError(
                "Import is not allowed on production systems! Use --allow-production"
            )

    if force and not (remote or file or dump or latest):
        console.print("[bold red]✗ Nothing to import.[/bold red]")
        raise typer.Exit(code=1)

    engine = DumpEngine(config, connection)
    local_requested = bool(file or dump or latest)

    with handle_errors():
        engine.runner.guard_enabled()

        if remote or (not local_requested and _user_wants_remote_dump()):
            source: str | Path = _download(engine, flush)
        elif file:
            source = file
        elif dump:
            source = engine.create_destination_file_path(dump)
            if engine.disk.missing(source):
                raise DumpNotFoundError(source)
        elif latest:
            source = engine.get_latest_dump_name()
            console.print(f"Importing [yellow]{source}[/yellow]")
        else:
            source = _choose_dump(engine, connection, ignore_connection_filter)

    if not force and not typer.confirm(
            f"Are you sure that you want to import the dump into the database: "
            f"{engine.get_database_name()}?"
    ):
        console.print("[yellow]Import aborted[/yellow]")
        raise typer.Exit()

    options = ImportOptions(allow_production=allow_production, no_wipe=no_wipe)
    with handle_errors():
        with console.status("[bold blue]Importing..."):
            engine.import_dump(source, options)
        if migrate:
            output = engine.run_migrations()
            if output:
                console.print(output.rstrip())

    console.print("[bold green]✓ Import done![/bold green]")
