"""Main Typer application entry point for the dumpguard CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from dumpguard import __version__
from dumpguard.cli.common import console, handle_errors, load_app_config
from dumpguard.cli.config_cmd import config_app
from dumpguard.cli.export import export_dump, list_dumps
from dumpguard.cli.importer import import_dump
from dumpguard.core.config import ensure_dirs
from dumpguard.core.models import LogFormat
from dumpguard.logging import setup_logging

app = typer.Typer(
    name="dumpguard",
    help="Create, transfer and safely import database dumps.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=True,
)

app.command("export")(export_dump)
app.command("import")(import_dump)
app.command("list")(list_dumps)
app.add_typer(config_app, name="config", help="Configuration management")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dumpguard {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
        ctx: typer.Context,
        version: bool = typer.Option(
            False,
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
        verbose: bool = typer.Option(
            False,
            "--verbose",
            "-v",
            help="Enable verbose (DEBUG) logging.",
        ),
        log_json: bool = typer.Option(
            False,
            "--log-json",
            help="Output logs in JSON format.",
        ),
        config_path: Path | None = typer.Option(
            None,
            "--config",
            help="Path to a config.toml (default: the platform config directory).",
        ),
) -> None:
    """dumpguard: create, transfer and import database dumps."""
    ensure_dirs()
    level = "DEBUG" if verbose else "INFO"
    fmt = LogFormat.JSON if log_json else LogFormat.CONSOLE
    setup_logging(level=level, log_format=fmt)
    ctx.obj = {"config_path": config_path, "verbose": verbose}


# ──────────────────── test-connection command ────────────


@app.command("test-connection")
def test_connection(
        ctx: typer.Context,
        connection: str | None = typer.Option(
            None, "--connection", "-c", help="Configured connection to test."
        ),
) -> None:
    """Test database connectivity and validate credentials."""
    from dumpguard.core.engine import DumpEngine
    from dumpguard.core.exceptions import InvalidConnectionError
    from dumpguard.engines import check_connection

    config = load_app_config(ctx)
    engine = DumpEngine(config, connection)

    with handle_errors("Connection failed: "):
        if engine.connection is None:
            raise InvalidConnectionError(
                f"Connection '{engine.connection_name}' is not configured"
            )
        conn = engine.connection
        with console.status("[bold blue]Testing connection..."):
            check_connection(conn)

    console.print("[bold green]✓ Connection successful![/bold green]")
    console.print(f"  Driver:   {conn.driver.value}")
    console.print(f"  Host:     {conn.host}:{conn.port}")
    console.print(f"  Database: {conn.database or '(default)'}")


# ──────────────────── keys command ───────────────────────


@app.command("keys")
def create_keys(
        ctx: typer.Context,
) -> None:
    """Generate a key pair for encrypted remote dumps.

    Keep the private key in the client's environment and register the public
    key with a bearer token in the server's [server.authorized_keys] table.
    """
    from dumpguard.remote.crypto import KeyPair

    config = load_app_config(ctx)
    pair = KeyPair.generate()

    console.print("[bold]Add this line to the client environment:[/bold]")
    console.print(f"  {config.remote.private_key_name}={pair.private_hex}", soft_wrap=True)
    console.print("\n[bold]Public key for the server's authorized_keys:[/bold]")
    console.print(f"  {pair.public_hex}", soft_wrap=True)


# ──────────────────── serve command ──────────────────────


@app.command("serve")
def serve_command(
        ctx: typer.Context,
        host: str | None = typer.Option(None, "--host", help="Interface to bind."),
        port: int | None = typer.Option(None, "--port", help="Port to listen on."),
) -> None:
    """Serve the dump export endpoint for remote clients."""
    from dumpguard.server import serve

    config = load_app_config(ctx)
    console.print(
        f"[bold]Serving {config.server.dump_endpoint_route} on "
        f"{host or config.server.host}:{port or config.server.port}[/bold]"
    )
    serve(config, host=host, port=port)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
