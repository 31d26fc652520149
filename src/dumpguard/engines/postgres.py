"""PostgreSQL command builder using pg_dump / psql."""

from __future__ import annotations

from pathlib import Path

from dumpguard.core.models import ConnectionConfig, DumpOptions
from dumpguard.engines.base import CommandSpec, DumpCommandBuilder


class PostgresCommandBuilder(DumpCommandBuilder):
    """Builder for PostgreSQL connections.

    pg_dump writes plain SQL to standard output, which the runner redirects
    into the destination file. Restores replay that SQL through psql.
    """

    dump_binary = "pg_dump"
    client_binary = "psql"

    def _connection_arguments(self, config: ConnectionConfig) -> list[str]:
        args = [f"--host={config.host}", f"--port={config.port or 5432}"]
        if config.username:
            args.append(f"--username={config.username}")
        args.append(f"--dbname={config.database}")
        return args

    def environment(self, config: ConnectionConfig) -> dict[str, str]:
        return {"PGPASSWORD": config.secret} if config.password else {}

    # ────────────── Dump ────────────────────

    def conditional_parameters(
            self, config: ConnectionConfig, options: DumpOptions
    ) -> dict[str, bool]:
        return {
            "--create": options.include_create_db,
            # --clean without --create would drop objects inside the target db
            "--clean": options.include_create_db and options.drop_db_before_create,
            "--verbose": options.include_comments,
            "--schema-only": not options.include_data,
            "--no-tablespaces": not options.include_tablespaces,
        }

    def build_dump_arguments(
            self, config: ConnectionConfig, options: DumpOptions, destination: Path
    ) -> list[str]:
        return [
            self.dump_binary,
            "--no-owner",
            "--no-acl",
            "--no-password",
            *self._connection_arguments(config),
            *self.active_parameters(config, options),
        ]

    def dump_command(
            self, config: ConnectionConfig, options: DumpOptions, destination: Path
    ) -> CommandSpec:
        return CommandSpec(
            argv=self.build_dump_arguments(config, options, destination),
            env=self.environment(config),
            stdout_path=destination,
        )

    # ────────────── Restore ─────────────────

    def wipe_command(self, config: ConnectionConfig) -> CommandSpec:
        return CommandSpec(
            argv=[
                self.client_binary,
                "--no-password",
                *self._connection_arguments(config),
                "--set=ON_ERROR_STOP=1",
                "--command=DROP SCHEMA public CASCADE; CREATE SCHEMA public;",
            ],
            env=self.environment(config),
        )

    def build_restore_arguments(self, config: ConnectionConfig, source: Path) -> list[str]:
        return [
            self.client_binary,
            "--no-password",
            *self._connection_arguments(config),
            f"--file={source}",
        ]

    def restore_command(self, config: ConnectionConfig, source: Path) -> CommandSpec:
        return CommandSpec(
            argv=self.build_restore_arguments(config, source),
            env=self.environment(config),
        )
