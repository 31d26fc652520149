"""Abstract base class for backend specific dump command builders."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from pathlib import Path

from dumpguard.core.models import ConnectionConfig, DumpOptions


@dataclass(frozen=True)
class CommandSpec:
    """Everything the subprocess runner needs for one invocation."""

    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)
    stdin_path: Path | None = None
    stdout_path: Path | None = None


class DumpCommandBuilder(abc.ABC):
    """Turns a connection and a set of dump options into tool invocations."""

    # ────────────── Dump ────────────────────

    @abc.abstractmethod
    def conditional_parameters(
            self, config: ConnectionConfig, options: DumpOptions
    ) -> dict[str, bool]:
        """Return every optional flag mapped to whether it is active.

        The mapping order is the order the flags appear on the command line.
        """

    @abc.abstractmethod
    def build_dump_arguments(
            self, config: ConnectionConfig, options: DumpOptions, destination: Path
    ) -> list[str]:
        """Return the full argument vector for the dump tool."""

    @abc.abstractmethod
    def environment(self, config: ConnectionConfig) -> dict[str, str]:
        """Return environment variables carrying credentials for the tools."""

    def dump_command(
            self, config: ConnectionConfig, options: DumpOptions, destination: Path
    ) -> CommandSpec:
        return CommandSpec(
            argv=self.build_dump_arguments(config, options, destination),
            env=self.environment(config),
        )

    def active_parameters(self, config: ConnectionConfig, options: DumpOptions) -> list[str]:
        """Return the flags from conditional_parameters() that are switched on."""
        return [
            flag for flag, enabled in self.conditional_parameters(config, options).items()
            if enabled
        ]

    def post_process(self, path: Path, options: DumpOptions) -> None:
        """Adjust the freshly written dump file. No-op by default."""

    # ────────────── Restore ─────────────────

    @abc.abstractmethod
    def wipe_command(self, config: ConnectionConfig) -> CommandSpec:
        """Return the command that empties the target database."""

    @abc.abstractmethod
    def build_restore_arguments(self, config: ConnectionConfig, source: Path) -> list[str]:
        """Return the argument vector that loads *source* into the database."""

    @abc.abstractmethod
    def restore_command(self, config: ConnectionConfig, source: Path) -> CommandSpec:
        """Return the full load invocation, including input redirection."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
