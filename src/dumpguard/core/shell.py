"""Execution of external dump/restore binaries."""

from __future__ import annotations

import contextlib
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from dumpguard.core.exceptions import FailedShellCommandError, ShellAccessDeniedError
from dumpguard.logging import get_logger

log = get_logger(__name__)

# Primitives that must be present before any dump or import is attempted.
_REQUIRED_PRIMITIVES = (
    ("subprocess", "Popen"),
    ("os", "waitpid"),
)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    argv: tuple[str, ...]
    exit_code: int
    stderr: str = ""
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        return f"{self.argv[0]} failed (exit {self.exit_code}): {detail}"


class SubprocessRunner:
    """Runs argument vectors (never shell strings) with extra environment bindings."""

    def __init__(self, timeout: float | None = 3600.0) -> None:
        self.timeout = timeout
        self._capabilities: dict[str, bool] | None = None

    # ────────────── Capability guard ────────

    def check_primitive(self, module: str, name: str) -> bool:
        """Return whether ``module.name`` exists. Separate so tests can fake it."""
        target = {"subprocess": subprocess, "os": os}[module]
        return callable(getattr(target, name, None))

    def guard_enabled(self) -> None:
        """Raise ShellAccessDeniedError when processes cannot be spawned.

        The capability check runs once per runner; the result is cached.
        """
        if self._capabilities is None:
            self._capabilities = {
                f"{module}.{name}": self.check_primitive(module, name)
                for module, name in _REQUIRED_PRIMITIVES
            }
        if not all(self._capabilities.values()):
            raise ShellAccessDeniedError(self._capabilities)

    # ────────────── Execution ───────────────

    def run(
            self,
            argv: Sequence[str],
            env: Mapping[str, str] | None = None,
            stdin_path: Path | None = None,
            stdout_path: Path | None = None,
    ) -> CommandResult:
        """Run *argv* and wait for it to exit.

        Args:
            argv: Program and arguments, passed to the OS without a shell.
            env: Variables added on top of the current environment.
            stdin_path: File streamed into the process' standard input.
            stdout_path: File receiving the process' standard output.

        Raises:
            FailedShellCommandError: If the binary is missing or the timeout expires.
        """
        self.guard_enabled()

        full_env = os.environ.copy()
        if env:
            full_env.update(env)

        log.debug("shell_command_start", command=argv[0], args=len(argv) - 1)

        with contextlib.ExitStack() as stack:
            stdin_handle = stack.enter_context(open(stdin_path, "rb")) if stdin_path else None
            stdout_handle = stack.enter_context(open(stdout_path, "wb")) if stdout_path else None
            try:
                result = subprocess.run(
                    list(argv),
                    env=full_env,
                    stdin=stdin_handle if stdin_handle else subprocess.DEVNULL,
                    stdout=stdout_handle if stdout_handle else subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                    check=False,
                )
            except FileNotFoundError as exc:
                raise FailedShellCommandError(f"{argv[0]} not found: {exc}") from exc
            except subprocess.TimeoutExpired as exc:
                raise FailedShellCommandError(
                    f"{argv[0]} timed out after {self.timeout} seconds"
                ) from exc

        outcome = CommandResult(
            argv=tuple(argv),
            exit_code=result.returncode,
            stderr=_decode(result.stderr),
            stdout=_decode(result.stdout),
        )
        log.debug("shell_command_complete", command=argv[0], exit_code=outcome.exit_code)
        return outcome


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""
