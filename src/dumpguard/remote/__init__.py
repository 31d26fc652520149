"""Transfer of dumps between environments."""

from __future__ import annotations

from dumpguard.remote.crypto import KeyPair, determine_encryption_overhead, open_sealed, seal
from dumpguard.remote.fetcher import RemoteFetcher

__all__ = ["KeyPair", "RemoteFetcher", "determine_encryption_overhead", "open_sealed", "seal"]
