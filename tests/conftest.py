"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from dumpguard.core.engine import DumpEngine
from dumpguard.core.models import (
    AppConfig,
    ConnectionConfig,
    DatabaseDriver,
    DiskConfig,
)
from dumpguard.core.shell import CommandResult, SubprocessRunner
from dumpguard.engines.mysql import MySqlCommandBuilder
from dumpguard.storage.local import LocalDisk

DUMP_SQL = b"-- MySQL dump\nCREATE TABLE `users` (`id` int) ENGINE=InnoDB AUTO_INCREMENT=42;\n"


class FakeRunner(SubprocessRunner):
    """Records commands instead of executing them.

    Dump tools write ``dump_output`` to their result file (or redirected
    stdout). Exit codes can be overridden per program name.
    """

    def __init__(
            self,
            exit_codes: Mapping[str, int] | None = None,
            dump_output: bytes = DUMP_SQL,
            stdout_for: Callable[[list[str]], str] | None = None,
    ) -> None:
        super().__init__(timeout=None)
        self.exit_codes = dict(exit_codes or {})
        self.dump_output = dump_output
        self.stdout_for = stdout_for
        self.calls: list[dict] = []

    def check_primitive(self, module: str, name: str) -> bool:
        return True

    def run(
            self,
            argv: Sequence[str],
            env: Mapping[str, str] | None = None,
            stdin_path: Path | None = None,
            stdout_path: Path | None = None,
    ) -> CommandResult:
        self.guard_enabled()
        argv = list(argv)
        self.calls.append({
            "argv": argv,
            "env": dict(env or {}),
            "stdin_path": stdin_path,
            "stdout_path": stdout_path,
        })
        code = self.exit_codes.get(argv[0], 0)
        if code == 0 and argv[0] in ("mysqldump", "pg_dump"):
            target = stdout_path
            for arg in argv:
                if arg.startswith("--result-file="):
                    target = Path(arg.split("=", 1)[1])
            if target is not None:
                Path(target).write_bytes(self.dump_output)
        stdout = self.stdout_for(argv) if self.stdout_for else ""
        return CommandResult(
            argv=tuple(argv), exit_code=code, stderr="boom" if code else "", stdout=stdout
        )

    def programs(self) -> list[str]:
        return [call["argv"][0] for call in self.calls]


@pytest.fixture()
def mysql_connection() -> ConnectionConfig:
    return ConnectionConfig(
        name="mysql",
        driver=DatabaseDriver.MYSQL,
        host="db.internal",
        username="root",
        password="s3cret",
        database="shop",
    )


@pytest.fixture()
def postgres_connection() -> ConnectionConfig:
    return ConnectionConfig(
        name="pgsql",
        driver=DatabaseDriver.POSTGRES,
        host="pg.internal",
        username="app",
        password="pw",
        database="shop",
    )


@pytest.fixture()
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture()
def app_config(
        tmp_path: Path,
        storage_root: Path,
        mysql_connection: ConnectionConfig,
        postgres_connection: ConnectionConfig,
) -> AppConfig:
    """Local config with a MySQL and a PostgreSQL connection and no git checkout."""
    project = tmp_path / "project"
    project.mkdir()
    return AppConfig(
        app_url="https://shop.example.com",
        default_connection="mysql",
        connections={"mysql": mysql_connection, "pgsql": postgres_connection},
        disks={"local": DiskConfig(root=storage_root)},
        base_directory="dumps",
        project_root=project,
    )


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def make_engine(
        app_config: AppConfig, fake_runner: FakeRunner, storage_root: Path
) -> Callable[..., DumpEngine]:
    """Build engines wired to the fake runner, a local disk and a MySQL 8 builder."""

    def factory(config: AppConfig | None = None, connection: str | None = None, **kwargs) -> DumpEngine:
        kwargs.setdefault("runner", fake_runner)
        kwargs.setdefault("disk", LocalDisk(storage_root))
        kwargs.setdefault("builder", MySqlCommandBuilder(version_probe=lambda _: "8.0.36"))
        return DumpEngine(config or app_config, connection, **kwargs)

    return factory


@pytest.fixture()
def write_dump() -> Callable[..., Path]:
    """Write a dump file, with a trailer when *meta* is given."""
    from dumpguard.metadata import codec

    def writer(path: Path, body: bytes = DUMP_SQL, meta: dict | None = None,
               options: dict | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        if meta is not None:
            codec.append(path, options or {}, meta)
        return path

    return writer


@pytest.fixture()
def runner_cls() -> type[FakeRunner]:
    """The FakeRunner class, for tests that need custom exit codes or output."""
    return FakeRunner
