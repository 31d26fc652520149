"""Tests for core models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from dumpguard.core.models import (
    AppConfig,
    CandidateFile,
    ConnectionConfig,
    DatabaseDriver,
    DumpMetadata,
    DumpOptions,
    MetadataShape,
    RemoteEndpointConfig,
    _human_size,
)


class TestConnectionConfig:
    def test_default_port_mysql(self) -> None:
        assert ConnectionConfig(driver=DatabaseDriver.MYSQL).port == 3306

    def test_default_port_mariadb(self) -> None:
        assert ConnectionConfig(driver=DatabaseDriver.MARIADB).port == 3306

    def test_default_port_postgres(self) -> None:
        assert ConnectionConfig(driver=DatabaseDriver.POSTGRES).port == 5432

    def test_custom_port(self) -> None:
        assert ConnectionConfig(driver=DatabaseDriver.POSTGRES, port=5433).port == 5433

    def test_frozen(self) -> None:
        config = ConnectionConfig(driver=DatabaseDriver.MYSQL)
        with pytest.raises(ValidationError):
            config.host = "elsewhere"  # type: ignore[misc]

    def test_secret(self) -> None:
        assert ConnectionConfig(driver=DatabaseDriver.MYSQL, password="pw").secret == "pw"
        assert ConnectionConfig(driver=DatabaseDriver.MYSQL).secret == ""

    def test_connection_string_masks_password(self) -> None:
        config = ConnectionConfig(
            driver=DatabaseDriver.POSTGRES,
            host="myhost",
            username="admin",
            password="hunter2",
            database="mydb",
        )
        assert config.connection_string == "postgres://admin@myhost:5432/mydb"

    def test_invalid_driver(self) -> None:
        with pytest.raises(ValidationError):
            ConnectionConfig(driver="oracle")  # type: ignore[arg-type]


class TestDumpOptions:
    def test_defaults(self) -> None:
        options = DumpOptions()
        assert options.include_data is True
        assert options.include_create_db is False
        assert options.include_tablespaces is False
        assert options.remove_auto_increment_state is False
        assert options.max_packet_length == "8M"

    def test_trailer_keys(self) -> None:
        trailer = DumpOptions(include_data=False).to_trailer()
        assert trailer["dumpData"] is False
        assert set(trailer) == {
            "maxPacketLength",
            "dumpCharsets",
            "dumpComments",
            "createDb",
            "dropDb",
            "dumpData",
            "removeAutoIncrementingState",
            "useTablespaces",
        }


class TestAppConfig:
    def test_resolve_plain_value(self) -> None:
        assert AppConfig(base_directory="dumps").resolve("base_directory") == "dumps"

    def test_resolve_callable_every_time(self) -> None:
        calls: list[int] = []

        def base() -> str:
            calls.append(1)
            return f"dumps-{len(calls)}"

        config = AppConfig(base_directory=base)
        assert config.resolve("base_directory") == "dumps-1"
        assert config.resolve("base_directory") == "dumps-2"

    def test_resolve_dotted_and_default(self) -> None:
        config = AppConfig(remote=RemoteEndpointConfig(server_url="https://a.example/export"))
        assert config.resolve("remote.server_url") == "https://a.example/export"
        assert config.resolve("remote.unknown", "fallback") == "fallback"

    def test_production(self) -> None:
        assert AppConfig(environment="Production").is_production
        assert not AppConfig(environment="staging").is_production

    def test_should_encrypt_follows_middleware(self) -> None:
        assert AppConfig().should_encrypt
        assert not AppConfig(route_middleware=["web"]).should_encrypt


class TestDumpMetadata:
    def test_nested_shape(self) -> None:
        metadata = DumpMetadata.from_trailer({
            "options": {"dumpData": True},
            "meta": {
                "default": {"connection": "mysql", "database": "shop",
                            "dumpedAtDate": "2024-05-01T10:30:00+00:00"},
                "git": {"revision": "abc123", "branch": "main"},
            },
        })
        assert metadata.shape == MetadataShape.NESTED
        assert metadata.connection == "mysql"
        assert metadata.database == "shop"
        assert metadata.git_branch == "main"
        assert metadata.git_revision == "abc123"
        assert metadata.dumped_at == datetime(2024, 5, 1, 10, 30, tzinfo=UTC)

    def test_nested_falls_back_to_database_block(self) -> None:
        metadata = DumpMetadata.from_trailer({
            "options": {},
            "meta": {"database": {"connection": "pgsql", "database": "crm"}},
        })
        assert metadata.connection == "pgsql"
        assert metadata.database == "crm"

    def test_flat_shape_with_date_struct(self) -> None:
        metadata = DumpMetadata.from_trailer({
            "options": {},
            "meta": {
                "connection": "mysql",
                "database": "shop",
                "gitBranch": "develop",
                "gitRevision": "fff000",
                "dumpedAtDate": {"year": 2021, "mon": 3, "mday": 4,
                                 "hours": 5, "minutes": 6, "seconds": 7},
            },
        })
        assert metadata.shape == MetadataShape.FLAT
        assert metadata.connection == "mysql"
        assert metadata.git_branch == "develop"
        assert metadata.git_revision == "fff000"
        assert metadata.dumped_at == datetime(2021, 3, 4, 5, 6, 7, tzinfo=UTC)

    def test_naive_iso_date_is_utc(self) -> None:
        metadata = DumpMetadata.from_trailer({
            "options": {}, "meta": {"default": {"dumpedAtDate": "2024-01-02T03:04:05"}},
        })
        assert metadata.dumped_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_garbage_date(self) -> None:
        metadata = DumpMetadata.from_trailer({
            "options": {}, "meta": {"default": {"dumpedAtDate": "yesterday"}},
        })
        assert metadata.dumped_at is None


class TestCandidateFile:
    def test_sort_key_prefers_dump_date(self) -> None:
        modified = datetime(2024, 1, 1, tzinfo=UTC)
        dumped = datetime(2023, 1, 1, tzinfo=UTC)
        candidate = CandidateFile(
            path="dumps/a.sql", file="a.sql", modified_time=modified,
            connection="mysql", dumped_at=dumped,
        )
        assert candidate.sort_key == dumped

    def test_size_human(self) -> None:
        candidate = CandidateFile(
            path="dumps/a.sql", file="a.sql", size=2048,
            modified_time=datetime.now(UTC), connection="external_dump",
        )
        assert candidate.size_human == "2.0 KB"


class TestHumanSize:
    def test_bytes(self) -> None:
        assert _human_size(500) == "500.0 B"

    def test_megabytes(self) -> None:
        assert _human_size(5 * 1024 * 1024) == "5.0 MB"
