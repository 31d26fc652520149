"""Pydantic models for dumpguard configuration and dump metadata."""

from __future__ import annotations

import enum
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


# ──────────────────────── Enums ──────────────────────────


class DatabaseDriver(enum.StrEnum):
    """Supported database backends."""

    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRES = "postgres"


class EngineState(enum.StrEnum):
    """Lifecycle state of a dump engine."""

    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    DUMPING = "dumping"
    IMPORTING = "importing"
    FETCHING = "fetching"


class MetadataShape(enum.StrEnum):
    """Layout of the `-- meta:` trailer payload.

    Early dumps stored a flat record (`connection`, `dumpedAtDate`, ...);
    current dumps store one block per metadata provider.
    """

    FLAT = "flat"
    NESTED = "nested"


class LogFormat(enum.StrEnum):
    """Structured log output format."""

    CONSOLE = "console"
    JSON = "json"


# ──────────────────── Connection / Options ───────────────


_DEFAULT_PORTS = {
    DatabaseDriver.MYSQL: 3306,
    DatabaseDriver.MARIADB: 3306,
    DatabaseDriver.POSTGRES: 5432,
}


class ConnectionConfig(BaseModel):
    """Immutable snapshot of one named database connection."""

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    driver: DatabaseDriver
    host: str = "localhost"
    port: int | None = None
    username: str | None = None
    password: SecretStr | None = None
    database: str = ""

    @model_validator(mode="before")
    @classmethod
    def set_default_port(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("port") is None and data.get("driver"):
            data = dict(data)
            data["port"] = _DEFAULT_PORTS.get(DatabaseDriver(data["driver"]))
        return data

    @property
    def is_mysql_family(self) -> bool:
        return self.driver in (DatabaseDriver.MYSQL, DatabaseDriver.MARIADB)

    @property
    def secret(self) -> str:
        """Return the plain password or an empty string."""
        return self.password.get_secret_value() if self.password else ""

    @property
    def connection_string(self) -> str:
        """Build a connection string (password masked)."""
        user = self.username or ""
        host = f"{self.host}:{self.port}" if self.port else self.host
        return f"{self.driver.value}://{user}@{host}/{self.database}"


class DumpOptions(BaseModel):
    """Toggles that shape the dump tool invocation.

    Instances are frozen; use `model_copy(update=...)` to derive a new set.
    """

    model_config = ConfigDict(frozen=True)

    include_data: bool = True
    include_create_db: bool = False
    # PostgreSQL only, requires include_create_db.
    drop_db_before_create: bool = True
    include_comments: bool = True
    include_charsets: bool = True
    include_tablespaces: bool = False
    # MySQL only.
    remove_auto_increment_state: bool = False
    max_packet_length: str = "8M"

    def to_trailer(self) -> dict[str, Any]:
        """Return the options as written to the `-- options:` trailer line."""
        return {
            "maxPacketLength": self.max_packet_length,
            "dumpCharsets": self.include_charsets,
            "dumpComments": self.include_comments,
            "createDb": self.include_create_db,
            "dropDb": self.drop_db_before_create,
            "dumpData": self.include_data,
            "removeAutoIncrementingState": self.remove_auto_increment_state,
            "useTablespaces": self.include_tablespaces,
        }


class ImportOptions(BaseModel):
    """Parameters for an import operation."""

    allow_production: bool = False
    no_wipe: bool = False
    migrate: bool = False


# ──────────────────── Config Models ──────────────────────


class DiskConfig(BaseModel):
    """A named storage location for dump files."""

    root: Path = Path(".")


class RemoteEndpointConfig(BaseModel):
    """Client side settings for pulling dumps from another environment."""

    server_url: str = ""
    htaccess_login: SecretStr | None = None
    auth_token_key_name: str = "DUMPGUARD_AUTH_TOKEN"
    private_key_name: str = "DUMPGUARD_PRIVATE_KEY"
    http_timeout: float = 120.0


class ServerConfig(BaseModel):
    """Server side settings for the dump download endpoint."""

    dump_endpoint_route: str = "/dumpguard/export"
    # bearer token -> hex encoded public key of the token owner
    authorized_keys: dict[str, SecretStr] = Field(default_factory=dict)
    basic_auth: SecretStr | None = None
    host: str = "127.0.0.1"
    port: int = 8000


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    log_file: Path | None = None
    format: LogFormat = LogFormat.CONSOLE


TOKEN_MIDDLEWARE = "auth:token"

DEFAULT_METADATA_PROVIDERS = ["default", "database", "git", "env", "jsonFile"]


class AppConfig(BaseModel):
    """Top-level application configuration."""

    environment: str = "local"
    app_url: str = "http://localhost"
    default_connection: str | None = None
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)
    disks: dict[str, DiskConfig] = Field(default_factory=lambda: {"local": DiskConfig()})
    disk_name: str = "local"
    base_directory: str | Callable[[], str] = "dumps"
    file_name: str = "{0} {3:04d}-{4:02d}-{5:02d} {6:02d}-{7:02d}.sql"
    max_packet_length: str = "8M"
    chunk_size: int = 1024 * 1024
    route_middleware: list[str] = Field(default_factory=lambda: [TOKEN_MIDDLEWARE])
    metadata_providers: list[Any] = Field(
        default_factory=lambda: list(DEFAULT_METADATA_PROVIDERS)
    )
    additional_env_metadata: str | None = None
    metadata_json_file_path: str = "dumpguard_metadata.json"
    project_root: Path = Path(".")
    shell_timeout: float | None = 3600.0
    migration_command: list[str] = Field(default_factory=list)
    remote: RemoteEndpointConfig = RemoteEndpointConfig()
    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()

    def resolve(self, key: str, default: Any = None) -> Any:
        """Return the value at a dotted *key*, invoking it if it is callable."""
        value: Any = self
        for part in key.split("."):
            value = getattr(value, part, None)
            if value is None:
                return default
        return value() if callable(value) else value

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def should_encrypt(self) -> bool:
        """Token auth is active, which implies encrypted transfers."""
        return TOKEN_MIDDLEWARE in self.route_middleware


# ──────────────────── Metadata Models ────────────────────


class DumpMetadata(BaseModel):
    """Decoded trailer of a dump artifact, tagged with the detected shape."""

    options: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)
    shape: MetadataShape = MetadataShape.NESTED

    @classmethod
    def from_trailer(cls, trailer: dict[str, dict[str, Any]]) -> DumpMetadata:
        meta = trailer.get("meta", {})
        shape = (
            MetadataShape.FLAT
            if "connection" in meta or "dumpedAtDate" in meta
            else MetadataShape.NESTED
        )
        return cls(options=trailer.get("options", {}), meta=meta, shape=shape)

    def _block_value(self, key: str, *blocks: str) -> Any:
        if self.shape == MetadataShape.FLAT:
            return self.meta.get(key)
        for block in blocks:
            section = self.meta.get(block)
            if isinstance(section, dict) and section.get(key) is not None:
                return section[key]
        return None

    @property
    def connection(self) -> str | None:
        return self._block_value("connection", "default", "database")

    @property
    def database(self) -> str | None:
        return self._block_value("database", "default", "database")

    @property
    def git_revision(self) -> str | None:
        if self.shape == MetadataShape.FLAT:
            return self.meta.get("gitRevision")
        return self._block_value("revision", "git")

    @property
    def git_branch(self) -> str | None:
        if self.shape == MetadataShape.FLAT:
            return self.meta.get("gitBranch")
        return self._block_value("branch", "git")

    @property
    def dumped_at(self) -> datetime | None:
        value = self._block_value("dumpedAtDate", "default", "database")
        if isinstance(value, dict):
            # Flat layout stores a getdate()-style struct.
            try:
                return datetime(
                    int(value.get("year", 0)),
                    int(value.get("mon", 1)),
                    int(value.get("mday", 1)),
                    int(value.get("hours", 0)),
                    int(value.get("minutes", 0)),
                    int(value.get("seconds", 0)),
                    tzinfo=UTC,
                )
            except (TypeError, ValueError):
                return None
        if isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value)
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        return None


class CandidateFile(BaseModel):
    """A dump file considered during listing and selection."""

    path: str
    file: str
    size: int = 0
    modified_time: datetime
    metadata: DumpMetadata | None = None
    connection: str
    database: str = ""
    dumped_at: datetime | None = None
    git_revision: str = ""
    git_branch: str = ""

    @property
    def sort_key(self) -> datetime:
        return self.dumped_at or self.modified_time

    @property
    def size_human(self) -> str:
        return _human_size(self.size)


# ──────────────────── Helpers ────────────────────────────


def _human_size(nbytes: int) -> str:
    """Convert bytes to human-readable string."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(nbytes) < 1024:
            return f"{nbytes:.1f} {unit}"
        nbytes /= 1024  # type: ignore[assignment]
    return f"{nbytes:.1f} PB"
