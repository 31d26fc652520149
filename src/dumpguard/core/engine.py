"""Dump lifecycle orchestration: create, import, fetch and housekeeping."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import Any, Literal
from urllib.parse import urlparse

import httpx

from dumpguard.core.config import provider_reference
from dumpguard.core.exceptions import (
    DumpNotFoundError,
    EmptyBaseDirectoryError,
    FailedCreatingDestinationPathError,
    FailedDumpGenerationError,
    FailedImportError,
    FailedMigrationError,
    FailedShellCommandError,
    FailedWipeError,
    InvalidConnectionError,
    InvalidEnvironmentError,
)
from dumpguard.core.models import (
    AppConfig,
    ConnectionConfig,
    DumpMetadata,
    DumpOptions,
    EngineState,
    ImportOptions,
)
from dumpguard.core.shell import CommandResult, SubprocessRunner
from dumpguard.engines import get_builder
from dumpguard.engines.base import CommandSpec, DumpCommandBuilder
from dumpguard.logging import bound_operation, get_logger
from dumpguard.metadata import codec
from dumpguard.metadata.providers import ProviderContext
from dumpguard.metadata.registry import MetadataProviderRegistry, ProviderFactory
from dumpguard.remote.fetcher import RemoteFetcher
from dumpguard.storage import get_disk
from dumpguard.storage.base import BaseDisk

log = get_logger(__name__)


class DumpEngine:
    """Creates and restores dumps for one configured connection.

    The engine holds mutable configuration (connection, dump toggles, remote
    overrides) and must not run two lifecycle operations at the same time.

    Args:
        config: Application config. The engine works on its own copy.
        connection_name: Connection to configure; the default connection if omitted.
        runner: Subprocess runner, replaceable in tests.
        disk: Storage disk; resolved from ``config.disk_name`` if omitted.
        builder: Command builder overriding the one chosen by driver.
        transport: httpx transport handed to the remote fetcher.
    """

    def __init__(
            self,
            config: AppConfig,
            connection_name: str | None = None,
            *,
            runner: SubprocessRunner | None = None,
            disk: BaseDisk | None = None,
            builder: DumpCommandBuilder | None = None,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config.model_copy()
        self.runner = runner or SubprocessRunner(timeout=config.shell_timeout)
        self._disk = disk
        self._builder_override = builder
        self._transport = transport

        self.state = EngineState.UNCONFIGURED
        self.connection: ConnectionConfig | None = None
        self.connection_name: str | None = None
        self.builder: DumpCommandBuilder | None = None
        self.options = DumpOptions(max_packet_length=config.max_packet_length)

        self._metadata_cache: dict[str, Any] | None = None
        self._metadata_providers: list[Any] | None = None
        self._provider_factories: dict[str, ProviderFactory] = {}
        self._auth_token: str | None = None

        self.configure(connection_name)

    # ────────────── Configuration ───────────

    def configure(self, connection_name: str | None = None) -> bool:
        """Resolve a connection and switch to the configured state.

        Returns False (and leaves the engine unconfigured) when the connection
        does not exist.
        """
        name = connection_name or self.config.default_connection
        if name is None:
            connections = self.config.connections
            name = "default" if "default" in connections else next(iter(connections), None)

        self.connection_name = name
        self._metadata_cache = None
        connection = self.config.connections.get(name) if name else None
        if connection is None:
            self.connection = None
            self.builder = None
            self.state = EngineState.UNCONFIGURED
            log.debug("engine_unconfigured", connection=name)
            return False

        self.connection = connection
        self.builder = self._builder_override or get_builder(connection)
        self.state = EngineState.CONFIGURED
        return True

    def with_connection_name(self, name: str | None) -> DumpEngine:
        self.configure(name)
        return self

    @property
    def is_configured(self) -> bool:
        return self.connection is not None

    @property
    def disk(self) -> BaseDisk:
        if self._disk is None:
            self._disk = get_disk(self.config)
        return self._disk

    def _require_configured(self) -> tuple[ConnectionConfig, DumpCommandBuilder]:
        if self.connection is None or self.builder is None:
            raise InvalidConnectionError(
                f"Connection '{self.connection_name}' is not configured properly"
            )
        return self.connection, self.builder

    # ────────────── Option mutators ─────────

    def _set(self, **values: Any) -> DumpEngine:
        self.options = self.options.model_copy(update=values)
        return self

    def with_data(self) -> DumpEngine:
        return self._set(include_data=True)

    def without_data(self) -> DumpEngine:
        return self._set(include_data=False)

    def with_create_db(self) -> DumpEngine:
        return self._set(include_create_db=True)

    def without_create_db(self) -> DumpEngine:
        return self._set(include_create_db=False)

    def with_drop_db(self) -> DumpEngine:
        return self._set(drop_db_before_create=True)

    def without_drop_db(self) -> DumpEngine:
        return self._set(drop_db_before_create=False)

    def with_comments(self) -> DumpEngine:
        return self._set(include_comments=True)

    def without_comments(self) -> DumpEngine:
        return self._set(include_comments=False)

    def with_charsets(self) -> DumpEngine:
        return self._set(include_charsets=True)

    def without_charsets(self) -> DumpEngine:
        return self._set(include_charsets=False)

    def with_tablespaces(self) -> DumpEngine:
        return self._set(include_tablespaces=True)

    def without_tablespaces(self) -> DumpEngine:
        return self._set(include_tablespaces=False)

    def with_auto_increment_state(self) -> DumpEngine:
        return self._set(remove_auto_increment_state=False)

    def without_auto_increment_state(self) -> DumpEngine:
        return self._set(remove_auto_increment_state=True)

    def with_max_packet_length(self, length: str) -> DumpEngine:
        return self._set(max_packet_length=length)

    def with_default_max_packet_length(self) -> DumpEngine:
        return self._set(max_packet_length=self.config.max_packet_length)

    def with_metadata_providers(self, providers: Iterable[Any]) -> DumpEngine:
        self._metadata_providers = list(providers)
        self._metadata_cache = None
        return self

    def register_metadata_provider(self, name: str, factory: ProviderFactory) -> DumpEngine:
        self._provider_factories[name] = factory
        return self

    def with_auth_token(self, token: str) -> DumpEngine:
        self._auth_token = token
        return self

    def with_auth_token_key_name(self, key_name: str) -> DumpEngine:
        self.config.remote = self.config.remote.model_copy(update={"auth_token_key_name": key_name})
        return self

    def with_private_key_name(self, key_name: str) -> DumpEngine:
        self.config.remote = self.config.remote.model_copy(update={"private_key_name": key_name})
        return self

    def with_server_url(self, url: str) -> DumpEngine:
        self.config.remote = self.config.remote.model_copy(update={"server_url": url})
        return self

    # ────────────── Accessors ───────────────

    def get_connection_name(self) -> str | None:
        return self.connection_name

    def get_database_name(self) -> str | None:
        return self.connection.database if self.connection else None

    def get_max_packet_length(self) -> str:
        return self.options.max_packet_length

    def get_base_directory(self) -> str:
        return self.config.resolve("base_directory", "") or ""

    def get_schema_state_parameters(self) -> dict[str, bool]:
        """Return the active builder's conditional dump flags ({} when unconfigured)."""
        if self.connection is None or self.builder is None:
            return {}
        return self.builder.conditional_parameters(self.connection, self.options)

    def get_options_trailer(self) -> dict[str, Any]:
        """Return the payload of the `-- options:` trailer line."""
        return {
            **self.options.to_trailer(),
            "connectionName": self.get_connection_name(),
            "databaseName": self.get_database_name(),
            "metadataProviders": [provider_reference(p) for p in self._provider_entries()],
        }

    def _provider_entries(self) -> list[Any]:
        if self._metadata_providers is not None:
            return self._metadata_providers
        return self.config.metadata_providers

    def get_metadata(self, refresh: bool = False) -> dict[str, Any]:
        """Return the merged provider metadata, computed once unless *refresh* is set."""
        if self._metadata_cache is None or refresh:
            registry = MetadataProviderRegistry(
                ProviderContext(engine=self, config=self.config),
                entries=self._provider_entries(),
                factories=self._provider_factories,
            )
            self._metadata_cache = registry.get_metadata()
        return self._metadata_cache

    # ────────────── Paths & files ───────────

    def create_filename(self, now: datetime | None = None) -> str:
        """Render ``config.file_name`` with host, database, connection and timestamp."""
        now = now or datetime.now(UTC)
        return self.config.file_name.format(
            urlparse(self.config.app_url).hostname or "",
            self.get_database_name() or "",
            self.get_connection_name() or "",
            now.year,
            now.month,
            now.day,
            now.hour,
            now.minute,
            now.second,
        )

    def create_destination_file_path(self, file_name: str, sub_folder: str | None = None) -> str:
        parts = [self.get_base_directory(), sub_folder, file_name]
        return "/".join(part.strip("/") for part in parts if part)

    def _disk_path(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.disk.path(str(path))

    def _visible_files(self, directory: str) -> list[str]:
        # Hidden files include unfinished .dumpguard-*.sql.part output.
        return [f for f in self.disk.files(directory) if not PurePosixPath(f).name.startswith(".")]

    def get_dump_files(self, exclude: str | None = None) -> list[str]:
        files = self._visible_files(self.get_base_directory())
        if exclude:
            files = [f for f in files if f != exclude]
        return files

    def flush(self, exclude: str | None = None) -> None:
        """Delete every file in the base directory except *exclude*.

        Unfinished ``.dumpguard-*.sql.part`` files are removed as well.
        """
        files = [f for f in self.disk.files(self.get_base_directory()) if f != exclude]
        for file in files:
            self.disk.delete(file)
        log.info("dumps_flushed", deleted=len(files), kept=exclude)

    def get_latest_dump_name(self) -> str:
        """Return the disk-relative path of the most recently modified dump.

        Raises:
            DumpNotFoundError: If the base directory does not exist.
            EmptyBaseDirectoryError: If it exists but contains no files.
        """
        base_directory = self.get_base_directory()
        if self.disk.missing(base_directory):
            raise DumpNotFoundError(str(self.disk.path(base_directory)))
        files = self._visible_files(base_directory)
        if not files:
            raise EmptyBaseDirectoryError()
        return max(files, key=lambda f: (self.disk.last_modified(f), f))

    def get_dump_metadata(self, path: str | Path) -> codec.Trailer | Literal[False]:
        return codec.decode(self._disk_path(path))

    def read_dump_metadata(self, path: str | Path) -> DumpMetadata | None:
        return codec.read_dump_metadata(self._disk_path(path))

    def _ensure_directory(self, relative: str) -> None:
        if "://" in relative:
            raise FailedCreatingDestinationPathError(
                f"The destination path {relative} is not a filesystem path"
            )
        try:
            if self.disk.missing(relative) or not self.disk.path(relative).is_dir():
                self.disk.make_directory(relative)
        except OSError as exc:
            raise FailedCreatingDestinationPathError(
                f"Could not create the non-existing destination path {relative}: {exc}"
            ) from exc

    # ────────────── Shell helpers ───────────

    def _run(self, spec: CommandSpec, error: type[Exception]) -> CommandResult:
        try:
            result = self.runner.run(
                spec.argv, env=spec.env, stdin_path=spec.stdin_path, stdout_path=spec.stdout_path
            )
        except FailedShellCommandError as exc:
            raise error(str(exc)) from exc
        if not result.ok:
            raise error(result.describe())
        return result

    # ────────────── Dump ────────────────────

    def create_dump(self, file_name: str | None = None, *, no_data: bool = False) -> Path:
        """Dump the configured database into the base directory.

        The tool writes to a temporary file next to the destination; it is
        renamed only after the trailer has been appended.

        ``no_data`` applies to this dump only; the engine's options are
        restored afterwards.

        Returns:
            Absolute path of the finished dump.
        """
        connection, builder = self._require_configured()
        self.runner.guard_enabled()

        previous = self.options
        if no_data:
            self.without_data()
        try:
            return self._write_dump(connection, builder, file_name)
        finally:
            self.options = previous

    def _write_dump(
            self, connection: ConnectionConfig, builder: DumpCommandBuilder, file_name: str | None,
    ) -> Path:
        relative = self.create_destination_file_path(file_name or self.create_filename())
        self._ensure_directory(relative.rpartition("/")[0])
        destination = self.disk.path(relative)

        with bound_operation("dump", connection=connection.name):
            fd, tmp_name = tempfile.mkstemp(
                dir=destination.parent, prefix=".dumpguard-", suffix=".sql.part"
            )
            os.close(fd)
            tmp_path = Path(tmp_name)
            self.state = EngineState.DUMPING
            try:
                log.info("dump_start", database=connection.database, file=str(destination))
                self._run(builder.dump_command(connection, self.options, tmp_path),
                          FailedDumpGenerationError)
                if tmp_path.stat().st_size == 0:
                    raise FailedDumpGenerationError("Dump could not be created: no output written")
                try:
                    builder.post_process(tmp_path, self.options)
                except OSError as exc:
                    raise FailedDumpGenerationError(f"Could not post-process dump: {exc}") from exc
                codec.append(tmp_path, self.get_options_trailer(), self.get_metadata(refresh=True))
                os.replace(tmp_path, destination)
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise
            finally:
                self.state = EngineState.CONFIGURED

        log.info("dump_created", file=str(destination), size=destination.stat().st_size)
        return destination

    # ────────────── Import ──────────────────

    def import_dump(self, source: str | Path, options: ImportOptions | None = None) -> None:
        """Wipe the configured database and load *source* into it.

        Raises:
            InvalidEnvironmentError: In production without ``allow_production``.
                Checked before anything else.
            InvalidConnectionError: If the engine is not configured.
            DumpNotFoundError: If *source* does not exist.
            FailedWipeError: If dropping/recreating the database fails.
            FailedImportError: If loading the dump fails.
            FailedMigrationError: If ``migrate`` is set and the migration fails.
        """
        options = options or ImportOptions()
        if self.config.is_production and not options.allow_production:
            raise InvalidEnvironmentError(
                "Production environment is not allowed and option was not set"
            )

        self.runner.guard_enabled()
        connection, builder = self._require_configured()

        source_path = self._disk_path(source)
        if not source_path.is_file():
            raise DumpNotFoundError(str(source_path))

        with bound_operation("import", connection=connection.name):
            self.state = EngineState.IMPORTING
            try:
                if options.no_wipe:
                    log.info("import_wipe_skipped", database=connection.database)
                else:
                    log.info("import_wipe_start", database=connection.database)
                    try:
                        self._run(builder.wipe_command(connection), FailedWipeError)
                    except FailedWipeError as exc:
                        log.error("import_wipe_failed", error=str(exc))
                        raise
                log.info("import_load_start", file=str(source_path))
                self._run(builder.restore_command(connection, source_path), FailedImportError)
                log.info("import_complete", database=connection.database)
            finally:
                self.state = EngineState.CONFIGURED

            if options.migrate:
                self.run_migrations()

    def run_migrations(self) -> str:
        """Run the configured migration command and return its output.

        Already imported data is left in place when this fails.
        """
        command = self.config.migration_command
        if not command:
            raise FailedMigrationError("No migration command is configured")
        log.info("migration_start", command=command[0])
        result = self._run(CommandSpec(argv=list(command)), FailedMigrationError)
        log.info("migration_complete")
        return result.stdout

    # ────────────── Remote ──────────────────

    def get_remote_dump(self) -> str:
        """Fetch a dump from the configured server; returns the disk-relative path."""
        fetcher = RemoteFetcher(
            self.config, self.disk, auth_token=self._auth_token, transport=self._transport
        )
        previous = self.state
        self.state = EngineState.FETCHING
        try:
            with bound_operation("fetch"):
                return fetcher.fetch()
        finally:
            self.state = previous
