"""HTTP endpoint that streams a fresh dump to a remote dumpguard client."""

from __future__ import annotations

import base64
import secrets
from collections.abc import Callable, Iterator
from email.utils import formatdate
from pathlib import Path
from time import time

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import StreamingResponse

from dumpguard import __version__
from dumpguard.core.engine import DumpEngine
from dumpguard.core.exceptions import DumpGuardError, InvalidConfigurationError
from dumpguard.core.models import AppConfig
from dumpguard.logging import get_logger
from dumpguard.remote.crypto import determine_encryption_overhead, load_key, seal
from dumpguard.remote.fetcher import CHUNK_SIZE_HEADER, ENCRYPTION_HEADER

log = get_logger(__name__)

EngineFactory = Callable[[], DumpEngine]


def _header_safe(message: str) -> str:
    return " ".join(message.split()).encode("latin-1", errors="replace").decode("latin-1")


def _error_response(exc: Exception) -> Response:
    message = _header_safe(str(exc))
    return Response(content=message, status_code=500, headers={"message": message})


def _unauthorized(scheme: str) -> Response:
    return Response(
        content="Unauthorized", status_code=401, headers={"WWW-Authenticate": scheme}
    )


def _bearer_token(request: Request) -> str | None:
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


def _basic_auth_ok(request: Request, expected: str) -> bool:
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "basic":
        return False
    try:
        supplied = base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return False
    return secrets.compare_digest(supplied.encode(), expected.encode())


def stream_file(
        path: Path, chunk_size: int, public_key: bytes | None = None
) -> Iterator[bytes]:
    """Yield *path* in *chunk_size* pieces, sealed when a key is given, then delete it."""
    try:
        with open(path, "rb") as fh:
            while chunk := fh.read(chunk_size):
                yield seal(chunk, public_key) if public_key else chunk
    finally:
        path.unlink(missing_ok=True)
        log.debug("export_file_removed", path=str(path))


def create_app(config: AppConfig, engine_factory: EngineFactory | None = None) -> FastAPI:
    """Build the FastAPI application exposing the dump export route."""
    app = FastAPI(title="dumpguard", version=__version__)
    app.state.config = config
    app.state.engine_factory = engine_factory or (lambda: DumpEngine(config))

    router = APIRouter()

    @router.post(config.server.dump_endpoint_route)
    def export_dump(request: Request) -> Response:
        settings: AppConfig = request.app.state.config
        encrypt = settings.should_encrypt
        public_key: bytes | None = None

        if encrypt:
            token = _bearer_token(request)
            stored = settings.server.authorized_keys.get(token) if token else None
            if stored is None:
                log.warning("export_unauthorized", reason="unknown token")
                return _unauthorized("Bearer")
            try:
                public_key = load_key(stored.get_secret_value(), "public key")
            except InvalidConfigurationError as exc:
                log.error("export_failed", error=str(exc))
                return _error_response(exc)
        elif settings.server.basic_auth is not None:
            if not _basic_auth_ok(request, settings.server.basic_auth.get_secret_value()):
                log.warning("export_unauthorized", reason="basic auth mismatch")
                return _unauthorized('Basic realm="dumpguard"')

        engine: DumpEngine = request.app.state.engine_factory()
        try:
            dump_path = engine.create_dump()
        except DumpGuardError as exc:
            log.error("export_failed", error=str(exc))
            return _error_response(exc)

        chunk_size = settings.chunk_size
        declared = chunk_size
        if public_key is not None:
            declared += determine_encryption_overhead(chunk_size, public_key)

        log.info("export_streaming", file=dump_path.name, encrypted=encrypt)
        return StreamingResponse(
            stream_file(dump_path, chunk_size, public_key),
            media_type="text/plain",
            headers={
                "Content-Disposition": f'attachment; filename="{engine.create_filename()}"',
                "Pragma": "no-cache",
                "Expires": formatdate(time() - 3600, usegmt=True),
                CHUNK_SIZE_HEADER: str(declared),
                ENCRYPTION_HEADER: "1" if encrypt else "0",
            },
        )

    app.include_router(router)
    return app


def serve(config: AppConfig, host: str | None = None, port: int | None = None) -> None:
    """Run the export endpoint with uvicorn (blocking)."""
    import uvicorn

    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )
