"""Helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from dumpguard.core.config import load_config
from dumpguard.core.exceptions import DumpGuardError
from dumpguard.core.models import AppConfig
from dumpguard.logging import get_logger, setup_logging_from_config

console = Console()
log = get_logger("cli")


def load_app_config(ctx: typer.Context) -> AppConfig:
    """Load the config selected by the global ``--config`` option."""
    obj = ctx.obj or {}
    config_path: Path | None = obj.get("config_path")
    with handle_errors():
        config = load_config(config_path)
    if config.logging.log_file:
        setup_logging_from_config(config.logging, verbose=obj.get("verbose", False))
    return config


@contextmanager
def handle_errors(prefix: str = "") -> Iterator[None]:
    """Turn dumpguard errors into a red one-line message and exit code 1."""
    try:
        yield
    except DumpGuardError as exc:
        message = f"{prefix}{exc}" if prefix else str(exc)
        console.print(f"[bold red]✗ {message}[/bold red]")
        log.error("command_failed", error_type=type(exc).__name__, error=str(exc))
        raise typer.Exit(code=1) from exc
