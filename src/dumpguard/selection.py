"""Choosing which dump file to import from the base directory."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePosixPath

from dumpguard.core.engine import DumpEngine
from dumpguard.core.exceptions import EmptyBaseDirectoryError, InvalidConnectionError
from dumpguard.core.models import CandidateFile
from dumpguard.logging import get_logger

log = get_logger(__name__)

# Bucket for files without usable metadata, or all files when unfiltered.
EXTERNAL_DUMP = "external_dump"

Chooser = Callable[[list[str]], str]


@dataclass
class SelectionResult:
    """Outcome of a selection: the bucket used, its files, and the pick (if any)."""

    connection: str | None
    candidates: list[CandidateFile] = field(default_factory=list)
    selected: CandidateFile | None = None
    auto_selected: bool = False


class FileSelectionResolver:
    """Groups dump files by originating connection and picks one.

    Files whose metadata names a connection that is not configured are left
    out. With ``ignore_connection_filter`` every file lands in the
    ``external_dump`` bucket regardless of its metadata.
    """

    def __init__(
            self,
            engine: DumpEngine,
            *,
            ignore_connection_filter: bool = False,
            known_connections: Iterable[str] | None = None,
    ) -> None:
        self.engine = engine
        self.ignore_connection_filter = ignore_connection_filter
        self.known_connections = set(
            engine.config.connections if known_connections is None else known_connections
        )

    def candidate_for(self, path: str) -> CandidateFile | None:
        """Describe one file, or return None when it belongs to an unknown connection."""
        disk = self.engine.disk
        modified = datetime.fromtimestamp(disk.last_modified(path), UTC)
        base = {
            "path": path,
            "file": PurePosixPath(path).name,
            "size": disk.size(path),
            "modified_time": modified,
        }

        metadata = None if self.ignore_connection_filter else self.engine.read_dump_metadata(path)
        if metadata is None or not metadata.connection:
            return CandidateFile(**base, metadata=metadata, connection=EXTERNAL_DUMP)

        if metadata.connection not in self.known_connections:
            log.debug("dump_skipped_unknown_connection", file=path, connection=metadata.connection)
            return None

        return CandidateFile(
            **base,
            metadata=metadata,
            connection=metadata.connection,
            database=metadata.database or "",
            dumped_at=metadata.dumped_at,
            git_revision=metadata.git_revision or "",
            git_branch=metadata.git_branch or "",
        )

    def candidates(self) -> list[CandidateFile]:
        """Return all eligible files, newest first."""
        found = [
            candidate
            for path in self.engine.get_dump_files()
            if (candidate := self.candidate_for(path)) is not None
        ]
        found.sort(key=lambda c: c.file)
        found.sort(key=lambda c: c.sort_key, reverse=True)
        return found

    @staticmethod
    def group(candidates: list[CandidateFile]) -> dict[str, list[CandidateFile]]:
        buckets: dict[str, list[CandidateFile]] = {}
        for candidate in candidates:
            buckets.setdefault(candidate.connection, []).append(candidate)
        return buckets

    def connection_files(
            self,
            connection_name: str | None = None,
            choose_connection: Chooser | None = None,
    ) -> tuple[str | None, list[CandidateFile]]:
        """Return the bucket to pick from.

        Raises:
            EmptyBaseDirectoryError: If there are no eligible files.
            InvalidConnectionError: If *connection_name* has no dumps, or several
                buckets exist and no chooser was given.
        """
        candidates = self.candidates()
        if not candidates:
            raise EmptyBaseDirectoryError()

        if self.ignore_connection_filter:
            return None, candidates

        buckets = self.group(candidates)
        if connection_name:
            if connection_name not in buckets:
                raise InvalidConnectionError(f"There are no dumps for connection '{connection_name}'")
            return connection_name, buckets[connection_name]

        names = list(buckets)
        if len(names) == 1:
            return names[0], buckets[names[0]]
        if choose_connection is None:
            raise InvalidConnectionError(
                f"Dumps exist for several connections ({', '.join(names)}); choose one"
            )
        chosen = choose_connection(names)
        if chosen not in buckets:
            raise InvalidConnectionError(f"There are no dumps for connection '{chosen}'")
        return chosen, buckets[chosen]

    def resolve(
            self,
            connection_name: str | None = None,
            choose_connection: Chooser | None = None,
            choose_file: Chooser | None = None,
    ) -> SelectionResult:
        """Pick a file: automatically for a single candidate, otherwise via *choose_file*.

        Without a file chooser an ambiguous bucket comes back with ``selected=None``.
        """
        connection, files = self.connection_files(connection_name, choose_connection)
        result = SelectionResult(connection=connection, candidates=files)

        if len(files) == 1:
            result.selected = files[0]
            result.auto_selected = True
        elif choose_file is not None:
            chosen = choose_file([c.file for c in files])
            result.selected = next((c for c in files if c.file == chosen), None)

        return result
