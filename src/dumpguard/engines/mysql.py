"""MySQL / MariaDB command builder using mysqldump / mysql client."""

from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Callable
from pathlib import Path

from dumpguard.core.models import ConnectionConfig, DatabaseDriver, DumpOptions
from dumpguard.engines.base import CommandSpec, DumpCommandBuilder
from dumpguard.logging import get_logger

log = get_logger(__name__)

_AUTO_INCREMENT = re.compile(r"\s+AUTO_INCREMENT=[0-9]+", re.IGNORECASE)


def query_server_version(config: ConnectionConfig) -> str:
    """Ask the server for its version string ("" if it cannot be reached)."""
    try:
        import pymysql

        conn = pymysql.connect(
            host=config.host,
            port=config.port or 3306,
            user=config.username,
            password=config.secret,
            connect_timeout=10,
        )
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT VERSION()")
                row = cur.fetchone()
        finally:
            conn.close()
        return str(row[0]) if row else ""
    except Exception as exc:
        log.warning("mysql_version_probe_failed", host=config.host, error=str(exc))
        return ""


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class MySqlCommandBuilder(DumpCommandBuilder):
    """Builder for MySQL and MariaDB connections."""

    dump_binary = "mysqldump"
    client_binary = "mysql"

    def __init__(self, version_probe: Callable[[ConnectionConfig], str] | None = None) -> None:
        self._version_probe = version_probe or query_server_version
        self._maria_cache: dict[tuple[str, int | None], bool] = {}

    def is_maria(self, config: ConnectionConfig) -> bool:
        """Detect a MariaDB server, asking the server once per host."""
        if config.driver == DatabaseDriver.MARIADB:
            return True
        key = (config.host, config.port)
        if key not in self._maria_cache:
            self._maria_cache[key] = "mariadb" in self._version_probe(config).lower()
        return self._maria_cache[key]

    def _connection_arguments(self, config: ConnectionConfig) -> list[str]:
        args = [f"--host={config.host}", f"--port={config.port or 3306}"]
        if config.username:
            args.append(f"--user={config.username}")
        return args

    def environment(self, config: ConnectionConfig) -> dict[str, str]:
        return {"MYSQL_PWD": config.secret} if config.password else {}

    # ────────────── Dump ────────────────────

    def conditional_parameters(
            self, config: ConnectionConfig, options: DumpOptions
    ) -> dict[str, bool]:
        return {
            "--set-gtid-purged=OFF": not self.is_maria(config),
            "--no-create-db": not options.include_create_db,
            "--skip-comments": not options.include_comments,
            "--skip-set-charset": not options.include_charsets,
            "--no-data": not options.include_data,
            "--no-tablespaces": not options.include_tablespaces,
        }

    def build_dump_arguments(
            self, config: ConnectionConfig, options: DumpOptions, destination: Path
    ) -> list[str]:
        return [
            self.dump_binary,
            *self._connection_arguments(config),
            "--add-locks",
            "--routines",
            "--tz-utc",
            "--column-statistics=0",
            f"--result-file={destination}",
            f"--max-allowed-packet={options.max_packet_length}",
            *self.active_parameters(config, options),
            config.database,
        ]

    def post_process(self, path: Path, options: DumpOptions) -> None:
        if options.remove_auto_increment_state:
            self.remove_auto_increment_state(path)

    @staticmethod
    def remove_auto_increment_state(path: Path) -> None:
        """Strip ``AUTO_INCREMENT=n`` table options from a dump, line by line."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".dumpguard-", suffix=".tmp")
        try:
            with open(path, "rb") as src, os.fdopen(fd, "wb") as dst:
                for line in src:
                    text = line.decode("utf-8", errors="surrogateescape")
                    dst.write(_AUTO_INCREMENT.sub("", text).encode("utf-8", errors="surrogateescape"))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ────────────── Restore ─────────────────

    def wipe_command(self, config: ConnectionConfig) -> CommandSpec:
        database = quote_identifier(config.database)
        return CommandSpec(
            argv=[
                self.client_binary,
                *self._connection_arguments(config),
                f"--execute=DROP DATABASE IF EXISTS {database}; CREATE DATABASE {database};",
            ],
            env=self.environment(config),
        )

    def build_restore_arguments(self, config: ConnectionConfig, source: Path) -> list[str]:
        return [
            self.client_binary,
            *self._connection_arguments(config),
            config.database,
        ]

    def restore_command(self, config: ConnectionConfig, source: Path) -> CommandSpec:
        return CommandSpec(
            argv=self.build_restore_arguments(config, source),
            env=self.environment(config),
            stdin_path=source,
        )
