"""Abstract base class for dump storage disks."""

from __future__ import annotations

import abc
from pathlib import Path
from typing import BinaryIO


class BaseDisk(abc.ABC):
    """A named location holding dump files, addressed by relative paths."""

    @abc.abstractmethod
    def path(self, relative: str) -> Path:
        """Return the absolute filesystem path for *relative*."""

    @abc.abstractmethod
    def exists(self, relative: str) -> bool:
        """Check if a file or directory exists on the disk."""

    def missing(self, relative: str) -> bool:
        return not self.exists(relative)

    @abc.abstractmethod
    def make_directory(self, relative: str) -> None:
        """Create a directory (and its parents).

        Raises:
            OSError: If the directory cannot be created.
        """

    @abc.abstractmethod
    def files(self, directory: str) -> list[str]:
        """List the files directly inside *directory*, as disk-relative paths."""

    @abc.abstractmethod
    def last_modified(self, relative: str) -> float:
        """Return the modification time as a POSIX timestamp."""

    @abc.abstractmethod
    def size(self, relative: str) -> int:
        """Return the file size in bytes."""

    @abc.abstractmethod
    def delete(self, relative: str) -> None:
        """Delete a single file. Missing files are ignored."""

    @abc.abstractmethod
    def open_read(self, relative: str) -> BinaryIO:
        """Open a file for binary reading."""

    @abc.abstractmethod
    def open_write(self, relative: str) -> BinaryIO:
        """Open (truncating) a file for binary writing, creating parent directories."""

    @abc.abstractmethod
    def move(self, source: str, target: str) -> None:
        """Rename *source* to *target*, replacing an existing file."""
