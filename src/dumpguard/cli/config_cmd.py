"""CLI config subcommands for managing dumpguard configuration."""

from __future__ import annotations

from pathlib import Path

import click
import typer
from rich.console import Console
from rich.syntax import Syntax

from dumpguard.core.models import DatabaseDriver, LogFormat, LoggingConfig

config_app = typer.Typer(no_args_is_help=True, rich_markup_mode="rich")
console = Console()


@config_app.command("init")
def config_init(
        path: Path | None = typer.Option(
            None, "--path", help="Custom config file location."
        ),
) -> None:
    """Create or update the configuration file interactively.

    If no --path is given, writes to the default location:
      macOS:  ~/Library/Application Support/dumpguard/config.toml
      Linux:  ~/.config/dumpguard/config.toml
    """
    from dumpguard.core.config import CONFIG_FILE, save_config_file
    from dumpguard.core.models import (
        AppConfig,
        ConnectionConfig,
        DiskConfig,
        RemoteEndpointConfig,
        TOKEN_MIDDLEWARE,
    )

    target = path or CONFIG_FILE

    if target.exists():
        overwrite = typer.confirm(f"Config already exists at {target}. Overwrite?")
        if not overwrite:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit()

    console.print("[bold]dumpguard configuration wizard[/bold]\n")

    # ── Connection ──
    console.print("[bold blue]Database Connection[/bold blue]")
    driver = typer.prompt(
        "Database driver",
        type=click.Choice([d.value for d in DatabaseDriver]),
        default="mysql",
    )
    name = typer.prompt("Connection name", default="default")
    conn_kwargs: dict = {"name": name, "driver": DatabaseDriver(driver)}
    conn_kwargs["host"] = typer.prompt("Host", default="localhost")
    conn_kwargs["port"] = typer.prompt(
        "Port", default=5432 if driver == "postgres" else 3306, type=int
    )
    conn_kwargs["username"] = typer.prompt("Username", default="")
    pw = typer.prompt("Password (leave empty to skip)", default="", hide_input=True)
    if pw:
        conn_kwargs["password"] = pw
    conn_kwargs["database"] = typer.prompt("Database name", default="")

    # ── Storage ──
    console.print("\n[bold blue]Storage[/bold blue]")
    root = Path(typer.prompt("Disk root directory", default="."))
    base_directory = typer.prompt("Dump directory (relative to the disk root)", default="dumps")

    # ── Remote ──
    console.print("\n[bold blue]Remote server (optional)[/bold blue]")
    server_url = typer.prompt("Export endpoint URL (leave empty to skip)", default="")
    use_token = typer.confirm("Use token authentication with encryption?", default=True)
    htaccess = ""
    if not use_token:
        htaccess = typer.prompt("htaccess login user:password (leave empty to skip)", default="")

    config = AppConfig(
        default_connection=name,
        connections={name: ConnectionConfig(**conn_kwargs)},
        disks={"local": DiskConfig(root=root)},
        base_directory=base_directory,
        route_middleware=[TOKEN_MIDDLEWARE] if use_token else [],
        remote=RemoteEndpointConfig(server_url=server_url, htaccess_login=htaccess or None),
        logging=LoggingConfig(level="INFO", format=LogFormat.CONSOLE),
    )

    saved_path = save_config_file(config, target)
    console.print(f"\n[green]✓[/green] Config saved to: {saved_path}")
    console.print("  File permissions set to 600 (owner-only read/write).")


@config_app.command("show")
def config_show(
        path: Path | None = typer.Option(
            None, "--path", help="Custom config file location."
        ),
) -> None:
    """Display the current configuration."""
    from dumpguard.core.config import CONFIG_FILE

    target = path or CONFIG_FILE

    if not target.exists():
        console.print(
            f"[yellow]No config file found at {target}.[/yellow]\n"
            f"Run [bold]dumpguard config init[/bold] to create one."
        )
        raise typer.Exit()

    content = target.read_text()
    syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
    console.print(f"[bold]Config: {target}[/bold]\n")
    console.print(syntax)


@config_app.command("path")
def config_path() -> None:
    """Show config and data directory paths."""
    from dumpguard.core.config import CONFIG_DIR, CONFIG_FILE, DATA_DIR, LOG_DIR

    console.print("[bold]dumpguard paths:[/bold]")
    console.print(f"  Config dir:    {CONFIG_DIR}")
    console.print(f"  Config file:   {CONFIG_FILE}")
    console.print(f"  Data dir:      {DATA_DIR}")
    console.print(f"  Logs dir:      {LOG_DIR}")
