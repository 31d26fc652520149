"""Dump metadata: trailer codec and pluggable providers."""

from __future__ import annotations

from dumpguard.metadata.codec import decode, encode, read_dump_metadata
from dumpguard.metadata.providers import MetadataProvider, ProviderContext
from dumpguard.metadata.registry import MetadataProviderRegistry

__all__ = [
    "MetadataProvider",
    "MetadataProviderRegistry",
    "ProviderContext",
    "decode",
    "encode",
    "read_dump_metadata",
]
