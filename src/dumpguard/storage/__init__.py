"""Storage disk registry."""

from __future__ import annotations

from dumpguard.core.exceptions import InvalidConfigurationError
from dumpguard.core.models import AppConfig
from dumpguard.storage.base import BaseDisk
from dumpguard.storage.local import LocalDisk


def get_disk(config: AppConfig, name: str | None = None) -> BaseDisk:
    """Instantiate the disk configured under *name* (default: ``config.disk_name``).

    Raises:
        InvalidConfigurationError: If no disk with that name is configured.
    """
    disk_name = name or config.disk_name
    disk = config.disks.get(disk_name)
    if disk is None:
        raise InvalidConfigurationError(f"Disk '{disk_name}' is not configured")
    return LocalDisk(root=disk.root)


__all__ = ["BaseDisk", "LocalDisk", "get_disk"]
