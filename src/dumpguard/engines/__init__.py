"""Dump command builder registry."""

from __future__ import annotations

from dumpguard.core.exceptions import InvalidConnectionError, UnsupportedDatabaseError
from dumpguard.core.models import ConnectionConfig, DatabaseDriver
from dumpguard.engines.base import CommandSpec, DumpCommandBuilder
from dumpguard.logging import get_logger

log = get_logger(__name__)


def get_builder(config: ConnectionConfig) -> DumpCommandBuilder:
    """Instantiate the command builder matching the connection's driver.

    Raises:
        UnsupportedDatabaseError: If the driver has no builder.
    """
    if config.driver in (DatabaseDriver.MYSQL, DatabaseDriver.MARIADB):
        from dumpguard.engines.mysql import MySqlCommandBuilder

        return MySqlCommandBuilder()

    if config.driver == DatabaseDriver.POSTGRES:
        from dumpguard.engines.postgres import PostgresCommandBuilder

        return PostgresCommandBuilder()

    raise UnsupportedDatabaseError(f"Unsupported database driver: {config.driver}")


def check_connection(config: ConnectionConfig) -> bool:
    """Open and close a client connection to verify the credentials.

    Raises:
        InvalidConnectionError: If the server cannot be reached or rejects the login.
    """
    try:
        if config.is_mysql_family:
            import pymysql

            conn = pymysql.connect(
                host=config.host,
                port=config.port or 3306,
                user=config.username,
                password=config.secret,
                database=config.database or None,
                connect_timeout=10,
            )
        else:
            import psycopg2

            conn = psycopg2.connect(
                host=config.host,
                port=config.port or 5432,
                user=config.username,
                password=config.secret or None,
                dbname=config.database or "postgres",
                connect_timeout=10,
            )
        conn.close()
    except Exception as exc:
        raise InvalidConnectionError(
            f"{config.driver.value} connection '{config.name}' failed: {exc}"
        ) from exc
    log.info("connection_ok", connection=config.name, host=config.host)
    return True


__all__ = ["CommandSpec", "DumpCommandBuilder", "get_builder", "check_connection"]
