"""Trailer line codec for dump artifacts.

A dump artifact ends with exactly two lines::

    -- options:{...}
    -- meta:{...}

Both payloads are JSON mappings on a single line. Decoding reads the file
backwards in fixed-size chunks so large dumps are never loaded whole.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

from dumpguard.core.exceptions import FailedDumpGenerationError
from dumpguard.core.models import DumpMetadata
from dumpguard.logging import get_logger

log = get_logger(__name__)

OPTIONS_KEY = "options"
META_KEY = "meta"
TRAILER_KEYS = (OPTIONS_KEY, META_KEY)

_TRAILER_LINE = re.compile(r"^-- (?P<type>[a-z0-9]+):(?P<data>.+)$", re.IGNORECASE)

Trailer = dict[str, dict[str, Any]]


def encode(options: dict[str, Any], metadata: dict[str, Any]) -> str:
    """Return the two trailer lines (newline terminated) for the given payloads."""
    payloads = {OPTIONS_KEY: options, META_KEY: metadata}
    return "".join(
        f"-- {key}:{json.dumps(payloads[key], ensure_ascii=False)}\n" for key in TRAILER_KEYS
    )


def append(path: Path, options: dict[str, Any], metadata: dict[str, Any]) -> None:
    """Append the trailer to a finished dump file.

    Raises:
        FailedDumpGenerationError: If the payload cannot be serialised or written.
    """
    try:
        trailer = encode(options, metadata)
    except (TypeError, ValueError) as exc:
        raise FailedDumpGenerationError(f"Could not encode dump metadata: {exc}") from exc

    try:
        with open(path, "ab+") as fh:
            fh.seek(0, os.SEEK_END)
            if fh.tell() > 0:
                fh.seek(-1, os.SEEK_END)
                if fh.read(1) != b"\n":
                    trailer = "\n" + trailer
            fh.write(trailer.encode("utf-8"))
    except OSError as exc:
        raise FailedDumpGenerationError(f"Could not append metadata to {path}: {exc}") from exc

    log.debug("metadata_appended", path=str(path), bytes=len(trailer))


def tail(path: Path, lines: int = 2, buffer_size: int = 1024) -> list[str]:
    """Return up to the last *lines* lines of a file, oldest first.

    The file is read from the end in *buffer_size* byte steps until enough
    line breaks were seen or the start of the file is reached. Bytes are
    joined before decoding, so multi-byte characters split across chunk
    boundaries decode correctly. A single trailing newline is ignored.
    """
    buffer_size = max(1, buffer_size)
    data = b""
    with open(path, "rb") as fh:
        position = fh.seek(0, os.SEEK_END)
        while position > 0:
            step = min(buffer_size, position)
            position -= step
            fh.seek(position)
            data = fh.read(step) + data
            body = data[:-1] if data.endswith(b"\n") else data
            # one more break than requested guarantees the first kept line is complete
            if body.count(b"\n") >= lines:
                break

    if data.endswith(b"\n"):
        data = data[:-1]
    text = data.decode("utf-8", errors="replace")
    return [line.rstrip("\r") for line in text.split("\n")[-lines:]]


def decode(path: Path, buffer_size: int = 1024) -> Trailer | Literal[False]:
    """Read the trailer of *path*.

    Returns ``False`` (never raises) when the file is unreadable, shorter than
    two lines, or its last two lines are not a well-formed options/meta pair.
    """
    try:
        last_lines = tail(path, len(TRAILER_KEYS), buffer_size)
    except OSError as exc:
        log.debug("metadata_tail_failed", path=str(path), error=str(exc))
        return False

    if len(last_lines) < len(TRAILER_KEYS):
        return False

    result: Trailer = {}
    for line in last_lines:
        match = _TRAILER_LINE.match(line)
        if not match or match["type"] not in TRAILER_KEYS:
            return False
        try:
            payload = json.loads(match["data"])
        except ValueError:
            return False
        if not isinstance(payload, dict):
            return False
        result[match["type"]] = payload

    if set(result) != set(TRAILER_KEYS):
        return False
    return result


def read_dump_metadata(path: Path, buffer_size: int = 1024) -> DumpMetadata | None:
    """Decode *path* into a shape-tagged DumpMetadata, or None if it has no trailer."""
    trailer = decode(path, buffer_size)
    if trailer is False:
        return None
    return DumpMetadata.from_trailer(trailer)
