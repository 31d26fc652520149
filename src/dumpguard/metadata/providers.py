"""Built-in metadata providers.

A provider contributes one named block to the `-- meta:` trailer line. Any
object exposing ``get_key()``, ``should_append()`` and ``get_metadata()``
qualifies; the classes below are the ones shipped with dumpguard.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from dumpguard.core.exceptions import DumpGuardError, FailedDumpGenerationError
from dumpguard.logging import get_logger

if TYPE_CHECKING:
    from dumpguard.core.engine import DumpEngine
    from dumpguard.core.models import AppConfig

log = get_logger(__name__)


@runtime_checkable
class MetadataProvider(Protocol):
    """Capability contract every metadata provider must satisfy."""

    def get_key(self) -> str:
        """Top-level key the block is stored under."""
        ...

    def should_append(self) -> bool:
        """Whether the block is added to the current dump."""
        ...

    def get_metadata(self) -> dict[str, Any] | str:
        ...


@dataclass(frozen=True)
class ProviderContext:
    """Collaborators handed to provider factories."""

    engine: DumpEngine
    config: AppConfig


def _now() -> str:
    return datetime.now(UTC).isoformat()


class DefaultMetadataProvider:
    """Database, connection, packet length and dump timestamp."""

    key = "default"

    def __init__(self, context: ProviderContext) -> None:
        self.engine = context.engine

    def get_key(self) -> str:
        return self.key

    def should_append(self) -> bool:
        return True

    def get_metadata(self) -> dict[str, Any]:
        return {
            "database": self.engine.get_database_name(),
            "connection": self.engine.get_connection_name(),
            "maxPacketLength": self.engine.get_max_packet_length(),
            "dumpedAtDate": _now(),
        }


class DatabaseMetadataProvider:
    """Like the default block, plus the dump tool's conditional parameters."""

    key = "database"

    def __init__(self, context: ProviderContext) -> None:
        self.engine = context.engine

    def get_key(self) -> str:
        return self.key

    def should_append(self) -> bool:
        return True

    def get_metadata(self) -> dict[str, Any]:
        return {
            "database": self.engine.get_database_name(),
            "connection": self.engine.get_connection_name(),
            "dumpedAtDate": _now(),
            "dumpData": self.engine.options.include_data,
            "dumpParameters": self.engine.get_schema_state_parameters(),
        }


class GitMetadataProvider:
    """Revision, branch and commit date of the project checkout.

    Each value falls back to an empty string when its git command fails.
    """

    key = "git"

    def __init__(self, context: ProviderContext) -> None:
        self.engine = context.engine
        self.project_root = Path(context.config.project_root)

    def get_key(self) -> str:
        return self.key

    def should_append(self) -> bool:
        return (self.project_root / ".git").exists()

    def get_metadata(self) -> dict[str, Any]:
        return {
            "revision": self._git("rev-parse", "HEAD"),
            "branch": self._git("rev-parse", "--abbrev-ref", "HEAD"),
            "revisionDate": self._git("show", "-s", "--format=%ci", "HEAD"),
        }

    def _git(self, *args: str) -> str:
        argv = ["git", "-C", str(self.project_root), *args]
        try:
            result = self.engine.runner.run(argv)
        except DumpGuardError as exc:
            log.warning("git_metadata_failed", command=" ".join(args), error=str(exc))
            return ""
        if not result.ok:
            log.warning("git_metadata_failed", command=" ".join(args), error=result.stderr.strip())
            return ""
        return result.stdout.strip()


class EnvMetadataProvider:
    """Free text supplied through configuration or the environment."""

    key = "env"

    def __init__(self, context: ProviderContext) -> None:
        self.value = context.config.additional_env_metadata

    def get_key(self) -> str:
        return self.key

    def should_append(self) -> bool:
        return bool(self.value)

    def get_metadata(self) -> str:
        return self.value or ""


class JsonFileMetadataProvider:
    """Contents of a JSON file below the project root, when it exists."""

    key = "jsonFile"

    def __init__(self, context: ProviderContext) -> None:
        self.path = Path(context.config.project_root) / context.config.metadata_json_file_path

    def get_key(self) -> str:
        return self.key

    def should_append(self) -> bool:
        return self.path.is_file()

    def get_metadata(self) -> dict[str, Any]:
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise FailedDumpGenerationError(
                f"Metadata file {self.path} is not readable JSON: {exc}"
            ) from exc


BUILTIN_PROVIDERS: dict[str, type] = {
    DefaultMetadataProvider.key: DefaultMetadataProvider,
    DatabaseMetadataProvider.key: DatabaseMetadataProvider,
    GitMetadataProvider.key: GitMetadataProvider,
    EnvMetadataProvider.key: EnvMetadataProvider,
    JsonFileMetadataProvider.key: JsonFileMetadataProvider,
}
