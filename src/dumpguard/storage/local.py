"""Local filesystem disk."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO

from dumpguard.logging import get_logger
from dumpguard.storage.base import BaseDisk

log = get_logger(__name__)


class LocalDisk(BaseDisk):
    """Store dump files below a root directory on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def path(self, relative: str) -> Path:
        return self.root / relative

    def exists(self, relative: str) -> bool:
        return self.path(relative).exists()

    def make_directory(self, relative: str) -> None:
        self.path(relative).mkdir(parents=True, exist_ok=True)

    def files(self, directory: str) -> list[str]:
        search_dir = self.path(directory)
        if not search_dir.is_dir():
            return []
        return sorted(
            str(entry.relative_to(self.root))
            for entry in search_dir.iterdir()
            if entry.is_file()
        )

    def last_modified(self, relative: str) -> float:
        return self.path(relative).stat().st_mtime

    def size(self, relative: str) -> int:
        return self.path(relative).stat().st_size

    def delete(self, relative: str) -> None:
        target = self.path(relative)
        target.unlink(missing_ok=True)
        log.debug("local_delete_complete", path=str(target))

    def open_read(self, relative: str) -> BinaryIO:
        return open(self.path(relative), "rb")

    def open_write(self, relative: str) -> BinaryIO:
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        return open(target, "wb")

    def move(self, source: str, target: str) -> None:
        os.replace(self.path(source), self.path(target))
