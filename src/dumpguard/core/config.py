"""Configuration loading and management for dumpguard.

Configuration sources (highest to lowest priority):
  1. CLI arguments (passed directly)
  2. Environment variables (DUMPGUARD_* prefix)
  3. Config file (~/.config/dumpguard/config.toml)
  4. Defaults
"""

from __future__ import annotations

import contextlib
import os
import sys
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from dumpguard.core.exceptions import InvalidConfigurationError
from dumpguard.core.models import (
    AppConfig,
    ConnectionConfig,
    DatabaseDriver,
    DiskConfig,
    LogFormat,
    LoggingConfig,
    RemoteEndpointConfig,
    ServerConfig,
)

# ──────────────────── Paths ──────────────────────────────

_APP_NAME = "dumpguard"


def _get_config_dir() -> Path:
    """Return the platform-appropriate config directory."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / _APP_NAME


def _get_data_dir() -> Path:
    """Return the platform-appropriate data directory."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / _APP_NAME


CONFIG_DIR = _get_config_dir()
DATA_DIR = _get_data_dir()
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_DIR = DATA_DIR / "logs"

# ──────────────────── Environment Loading ────────────────

_ENV_PREFIX = "DUMPGUARD_"


def _env(key: str, default: str | None = None) -> str | None:
    """Read an environment variable with the DUMPGUARD_ prefix."""
    return os.environ.get(f"{_ENV_PREFIX}{key}", default)


def _load_connection_from_env() -> ConnectionConfig | None:
    """Attempt to build a ConnectionConfig from environment variables."""
    driver = _env("DB_DRIVER")
    if not driver:
        return None
    try:
        return ConnectionConfig(
            name="default",
            driver=DatabaseDriver(driver.lower()),
            host=_env("DB_HOST", "localhost"),  # type: ignore[arg-type]
            port=int(p) if (p := _env("DB_PORT")) else None,
            username=_env("DB_USERNAME"),
            password=_env("DB_PASSWORD"),
            database=_env("DB_NAME", ""),  # type: ignore[arg-type]
        )
    except (ValueError, KeyError) as exc:
        raise InvalidConfigurationError(
            f"Invalid database connection in environment: {exc}"
        ) from exc


def _load_general_from_env() -> dict[str, Any]:
    """Load top-level overrides from environment."""
    overrides: dict[str, Any] = {}
    if env := _env("ENV"):
        overrides["environment"] = env
    if url := _env("APP_URL"):
        overrides["app_url"] = url
    if conn := _env("CONNECTION"):
        overrides["default_connection"] = conn
    if base := _env("BASE_DIRECTORY"):
        overrides["base_directory"] = base
    if disk := _env("DISK"):
        overrides["disk_name"] = disk
    if packet := _env("MAX_PACKET_LENGTH"):
        overrides["max_packet_length"] = packet
    if chunk := _env("CHUNK_SIZE"):
        overrides["chunk_size"] = int(chunk)
    if meta := _env("ADDITIONAL_METADATA"):
        overrides["additional_env_metadata"] = meta
    return overrides


def _load_remote_from_env() -> dict[str, Any]:
    """Load remote endpoint overrides from environment."""
    overrides: dict[str, Any] = {}
    if url := _env("SERVER_URL"):
        overrides["server_url"] = url
    if login := _env("HTACCESS_LOGIN"):
        overrides["htaccess_login"] = login
    if timeout := _env("HTTP_TIMEOUT"):
        overrides["http_timeout"] = float(timeout)
    return overrides


def _load_logging_from_env() -> dict[str, Any]:
    """Load logging config overrides from environment."""
    overrides: dict[str, Any] = {}
    if ll := _env("LOG_LEVEL"):
        overrides["level"] = ll.upper()
    if lf := _env("LOG_FILE"):
        overrides["log_file"] = Path(lf)
    if fmt := _env("LOG_FORMAT"):
        overrides["format"] = LogFormat(fmt.lower())
    return overrides


# ──────────────────── TOML File Loading ──────────────────


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load and return the raw TOML config dict. Returns empty dict if file missing."""
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidConfigurationError(f"Invalid TOML in {config_path}: {exc}") from exc


def save_config_file(config: AppConfig, path: Path | None = None) -> Path:
    """Save AppConfig to a TOML file."""
    config_path = path or CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = _config_to_toml_dict(config)
    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Restrict file permissions (Unix only)
    with contextlib.suppress(OSError):
        config_path.chmod(0o600)

    return config_path


def _config_to_toml_dict(config: AppConfig) -> dict[str, Any]:
    """Convert an AppConfig to a TOML-serialisable dict."""
    data: dict[str, Any] = config.model_dump(
        mode="json",
        exclude_none=True,
        exclude={
            "connections",
            "disks",
            "remote",
            "server",
            "logging",
            "base_directory",
            "metadata_providers",
        },
    )

    # Callables and classes only exist at runtime.
    if isinstance(config.base_directory, str):
        data["base_directory"] = config.base_directory
    data["metadata_providers"] = [provider_reference(p) for p in config.metadata_providers]

    if config.connections:
        data["connections"] = {}
        for name, conn in config.connections.items():
            conn_dict = conn.model_dump(mode="json", exclude_none=True, exclude={"name"})
            if conn.password:
                conn_dict["password"] = conn.password.get_secret_value()
            data["connections"][name] = conn_dict

    data["disks"] = {
        name: {"root": str(disk.root)} for name, disk in config.disks.items()
    }

    remote_dict = config.remote.model_dump(mode="json", exclude_none=True)
    if config.remote.htaccess_login:
        remote_dict["htaccess_login"] = config.remote.htaccess_login.get_secret_value()
    data["remote"] = remote_dict

    server_dict = config.server.model_dump(mode="json", exclude_none=True)
    server_dict["authorized_keys"] = {
        token: key.get_secret_value() for token, key in config.server.authorized_keys.items()
    }
    if config.server.basic_auth:
        server_dict["basic_auth"] = config.server.basic_auth.get_secret_value()
    data["server"] = server_dict

    data["logging"] = config.logging.model_dump(mode="json", exclude_none=True)

    return data


def provider_reference(provider: Any) -> str:
    """Return a `module:Class` reference for a provider entry."""
    if isinstance(provider, str):
        return provider
    cls = provider if isinstance(provider, type) else type(provider)
    return f"{cls.__module__}:{cls.__qualname__}"


# ──────────────────── Main Loader ────────────────────────


def load_config(config_path: Path | None = None, **overrides: Any) -> AppConfig:
    """Load the full application config (file + env overrides + explicit overrides)."""
    raw = load_config_file(config_path)

    try:
        connections: dict[str, ConnectionConfig] = {}
        for name, conn_data in raw.pop("connections", {}).items():
            connections[name] = ConnectionConfig(**{**conn_data, "name": name})

        env_conn = _load_connection_from_env()
        if env_conn:
            connections["default"] = env_conn

        disks = {
            name: DiskConfig(**disk_data) for name, disk_data in raw.pop("disks", {}).items()
        } or {"local": DiskConfig()}

        remote_data = raw.pop("remote", {})
        remote_data.update(_load_remote_from_env())

        server = ServerConfig(**raw.pop("server", {}))

        log_data = raw.pop("logging", {})
        log_data.update(_load_logging_from_env())

        general = {**raw, **_load_general_from_env(), **overrides}

        return AppConfig(
            connections=connections,
            disks=disks,
            remote=RemoteEndpointConfig(**remote_data),
            server=server,
            logging=LoggingConfig(**log_data),
            **general,
        )
    except ValidationError as exc:
        raise InvalidConfigurationError(f"Invalid configuration: {exc}") from exc


def ensure_dirs() -> None:
    """Create required application directories if they don't exist."""
    for d in (CONFIG_DIR, DATA_DIR, LOG_DIR):
        d.mkdir(parents=True, exist_ok=True)
