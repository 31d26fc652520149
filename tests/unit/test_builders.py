"""Tests for the MySQL and PostgreSQL command builders."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dumpguard.core.exceptions import InvalidConnectionError
from dumpguard.core.models import ConnectionConfig, DatabaseDriver, DumpOptions
from dumpguard.engines import check_connection, get_builder
from dumpguard.engines.mysql import MySqlCommandBuilder, quote_identifier
from dumpguard.engines.postgres import PostgresCommandBuilder


@pytest.fixture()
def mysql_builder() -> MySqlCommandBuilder:
    return MySqlCommandBuilder(version_probe=lambda _: "8.0.36")


class TestGetBuilder:
    def test_mysql(self, mysql_connection: ConnectionConfig) -> None:
        assert isinstance(get_builder(mysql_connection), MySqlCommandBuilder)

    def test_mariadb(self) -> None:
        config = ConnectionConfig(driver=DatabaseDriver.MARIADB)
        assert isinstance(get_builder(config), MySqlCommandBuilder)

    def test_postgres(self, postgres_connection: ConnectionConfig) -> None:
        assert isinstance(get_builder(postgres_connection), PostgresCommandBuilder)


class TestMySqlDump:
    def test_default_arguments(
            self, mysql_builder: MySqlCommandBuilder, mysql_connection: ConnectionConfig,
    ) -> None:
        argv = mysql_builder.build_dump_arguments(
            mysql_connection, DumpOptions(), Path("/tmp/out.sql")
        )
        assert argv == [
            "mysqldump",
            "--host=db.internal",
            "--port=3306",
            "--user=root",
            "--add-locks",
            "--routines",
            "--tz-utc",
            "--column-statistics=0",
            "--result-file=/tmp/out.sql",
            "--max-allowed-packet=8M",
            "--set-gtid-purged=OFF",
            "--no-create-db",
            "--no-tablespaces",
            "shop",
        ]

    def test_password_only_in_environment(
            self, mysql_builder: MySqlCommandBuilder, mysql_connection: ConnectionConfig,
    ) -> None:
        spec = mysql_builder.dump_command(mysql_connection, DumpOptions(), Path("/tmp/out.sql"))
        assert spec.env == {"MYSQL_PWD": "s3cret"}
        assert not any("s3cret" in arg for arg in spec.argv)

    def test_no_password(self, mysql_builder: MySqlCommandBuilder) -> None:
        config = ConnectionConfig(driver=DatabaseDriver.MYSQL, database="shop")
        assert mysql_builder.environment(config) == {}

    def test_conditional_flags(
            self, mysql_builder: MySqlCommandBuilder, mysql_connection: ConnectionConfig,
    ) -> None:
        options = DumpOptions(
            include_data=False,
            include_comments=False,
            include_charsets=False,
            include_create_db=True,
            include_tablespaces=True,
        )
        assert mysql_builder.active_parameters(mysql_connection, options) == [
            "--set-gtid-purged=OFF",
            "--skip-comments",
            "--skip-set-charset",
            "--no-data",
        ]

    def test_mariadb_skips_gtid(self, mysql_connection: ConnectionConfig) -> None:
        builder = MySqlCommandBuilder(version_probe=lambda _: "10.11.6-MariaDB-log")
        params = builder.conditional_parameters(mysql_connection, DumpOptions())
        assert params["--set-gtid-purged=OFF"] is False

    def test_mariadb_driver_never_probes(self) -> None:
        probe = MagicMock(return_value="8.0.36")
        builder = MySqlCommandBuilder(version_probe=probe)
        assert builder.is_maria(ConnectionConfig(driver=DatabaseDriver.MARIADB))
        probe.assert_not_called()

    def test_version_probe_cached_per_host(self, mysql_connection: ConnectionConfig) -> None:
        probe = MagicMock(return_value="8.0.36")
        builder = MySqlCommandBuilder(version_probe=probe)
        builder.conditional_parameters(mysql_connection, DumpOptions())
        builder.conditional_parameters(mysql_connection, DumpOptions(include_data=False))
        probe.assert_called_once()

    def test_unreachable_server_counts_as_mysql(
            self, mysql_connection: ConnectionConfig,
    ) -> None:
        with patch("pymysql.connect", side_effect=OSError("refused")):
            builder = MySqlCommandBuilder()
            assert builder.is_maria(mysql_connection) is False


class TestMySqlRestore:
    def test_wipe(
            self, mysql_builder: MySqlCommandBuilder, mysql_connection: ConnectionConfig,
    ) -> None:
        spec = mysql_builder.wipe_command(mysql_connection)
        assert spec.argv == [
            "mysql",
            "--host=db.internal",
            "--port=3306",
            "--user=root",
            "--execute=DROP DATABASE IF EXISTS `shop`; CREATE DATABASE `shop`;",
        ]
        assert spec.env == {"MYSQL_PWD": "s3cret"}

    def test_restore_reads_stdin(
            self, mysql_builder: MySqlCommandBuilder, mysql_connection: ConnectionConfig,
    ) -> None:
        spec = mysql_builder.restore_command(mysql_connection, Path("/dumps/a.sql"))
        assert spec.argv == [
            "mysql", "--host=db.internal", "--port=3306", "--user=root", "shop",
        ]
        assert spec.stdin_path == Path("/dumps/a.sql")

    def test_quote_identifier(self) -> None:
        assert quote_identifier("we`ird") == "`we``ird`"


class TestAutoIncrementRemoval:
    def test_removed_when_requested(self, tmp_path: Path, mysql_builder: MySqlCommandBuilder) -> None:
        path = tmp_path / "dump.sql"
        path.write_text(
            "CREATE TABLE `a` (`id` int) ENGINE=InnoDB AUTO_INCREMENT=42 DEFAULT CHARSET=utf8mb4;\n"
            "INSERT INTO `a` VALUES (1);\n"
        )
        mysql_builder.post_process(path, DumpOptions(remove_auto_increment_state=True))
        assert path.read_text() == (
            "CREATE TABLE `a` (`id` int) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;\n"
            "INSERT INTO `a` VALUES (1);\n"
        )
        assert list(tmp_path.iterdir()) == [path]

    def test_kept_by_default(self, tmp_path: Path, mysql_builder: MySqlCommandBuilder) -> None:
        path = tmp_path / "dump.sql"
        path.write_text("ENGINE=InnoDB AUTO_INCREMENT=7;\n")
        mysql_builder.post_process(path, DumpOptions())
        assert "AUTO_INCREMENT=7" in path.read_text()

    def test_column_definition_untouched(self, tmp_path: Path) -> None:
        path = tmp_path / "dump.sql"
        path.write_text("`id` int NOT NULL AUTO_INCREMENT,\n")
        MySqlCommandBuilder.remove_auto_increment_state(path)
        assert path.read_text() == "`id` int NOT NULL AUTO_INCREMENT,\n"


class TestPostgres:
    def test_default_dump_arguments(self, postgres_connection: ConnectionConfig) -> None:
        spec = PostgresCommandBuilder().dump_command(
            postgres_connection, DumpOptions(), Path("/tmp/out.sql")
        )
        assert spec.argv == [
            "pg_dump",
            "--no-owner",
            "--no-acl",
            "--no-password",
            "--host=pg.internal",
            "--port=5432",
            "--username=app",
            "--dbname=shop",
            "--verbose",
            "--no-tablespaces",
        ]
        assert spec.stdout_path == Path("/tmp/out.sql")
        assert spec.env == {"PGPASSWORD": "pw"}

    def test_clean_requires_create(self, postgres_connection: ConnectionConfig) -> None:
        builder = PostgresCommandBuilder()
        plain = builder.conditional_parameters(postgres_connection, DumpOptions())
        assert plain["--clean"] is False

        created = builder.conditional_parameters(
            postgres_connection, DumpOptions(include_create_db=True)
        )
        assert created["--create"] is True
        assert created["--clean"] is True

        kept = builder.conditional_parameters(
            postgres_connection,
            DumpOptions(include_create_db=True, drop_db_before_create=False),
        )
        assert kept["--clean"] is False

    def test_schema_only(self, postgres_connection: ConnectionConfig) -> None:
        active = PostgresCommandBuilder().active_parameters(
            postgres_connection,
            DumpOptions(include_data=False, include_comments=False, include_tablespaces=True),
        )
        assert active == ["--schema-only"]

    def test_wipe(self, postgres_connection: ConnectionConfig) -> None:
        spec = PostgresCommandBuilder().wipe_command(postgres_connection)
        assert spec.argv[0] == "psql"
        assert "--set=ON_ERROR_STOP=1" in spec.argv
        assert spec.argv[-1] == "--command=DROP SCHEMA public CASCADE; CREATE SCHEMA public;"

    def test_restore(self, postgres_connection: ConnectionConfig) -> None:
        spec = PostgresCommandBuilder().restore_command(postgres_connection, Path("/d/a.sql"))
        assert spec.argv[-1] == "--file=/d/a.sql"
        assert spec.stdin_path is None


class TestCheckConnection:
    def test_mysql_success(self, mysql_connection: ConnectionConfig) -> None:
        with patch("pymysql.connect") as connect:
            assert check_connection(mysql_connection) is True
        connect.return_value.close.assert_called_once()
        assert connect.call_args.kwargs["password"] == "s3cret"

    def test_postgres_failure(self, postgres_connection: ConnectionConfig) -> None:
        with patch("psycopg2.connect", side_effect=RuntimeError("no route")):
            with pytest.raises(InvalidConnectionError, match="no route"):
                check_connection(postgres_connection)
