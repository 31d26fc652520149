"""HTTP client pulling a dump from another environment's export endpoint."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import PurePosixPath

import httpx

from dumpguard.core.exceptions import (
    DumpNotFoundError,
    FailedCreatingDestinationPathError,
    FailedRemoteDatabaseFetchingError,
    InvalidConfigurationError,
    InvalidEnvironmentError,
    UnauthorizedError,
)
from dumpguard.core.models import AppConfig
from dumpguard.logging import get_logger
from dumpguard.remote.crypto import load_key, open_sealed
from dumpguard.storage.base import BaseDisk

log = get_logger(__name__)

CHUNK_SIZE_HEADER = "Chunk-Size"
ENCRYPTION_HEADER = "Encryption-Enabled"
DEFAULT_FILENAME = "remote_dump.sql"

_FILENAME = re.compile(r'filename="(?P<filename>.+)"', re.IGNORECASE)
_TRUTHY = {"1", "true", "yes", "on"}


def filename_from_disposition(header: str | None) -> str:
    """Extract the file name of a Content-Disposition header.

    Directory components are dropped so the server cannot choose where the
    file is written.
    """
    match = _FILENAME.search(header or "")
    if not match:
        return DEFAULT_FILENAME
    name = PurePosixPath(match["filename"].replace("\\", "/")).name
    return name or DEFAULT_FILENAME


class RemoteFetcher:
    """Downloads, optionally decrypts, and stores one remote dump.

    Args:
        config: Application config (remote endpoint, middleware, base directory).
        disk: Disk the dump is written to.
        auth_token: Bearer token; read from the configured env var when omitted.
        private_key: Hex private key; read from the configured env var when omitted.
        transport: Optional httpx transport, used by tests to fake the server.
    """

    def __init__(
            self,
            config: AppConfig,
            disk: BaseDisk,
            *,
            auth_token: str | None = None,
            private_key: str | None = None,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.disk = disk
        self._auth_token = auth_token
        self._private_key = private_key
        self._transport = transport

    # ────────────── Secrets ─────────────────

    def get_auth_token(self) -> str:
        if self._auth_token is not None:
            return self._auth_token
        key_name = self.config.remote.auth_token_key_name
        return os.environ.get(key_name, "") if key_name else ""

    def get_private_key(self) -> str:
        if self._private_key is not None:
            return self._private_key
        key_name = self.config.remote.private_key_name
        return os.environ.get(key_name, "") if key_name else ""

    # ────────────── Request ─────────────────

    def build_request_options(self) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        """Return the headers and auth for the request.

        Token auth and basic auth share the Authorization header, so exactly
        one of them must be configured.

        Raises:
            InvalidConfigurationError: If both or neither auth modes are configured.
        """
        headers = {"Accept": "application/json"}
        htaccess = self.config.remote.htaccess_login
        login = htaccess.get_secret_value() if htaccess else ""

        if self.config.should_encrypt:
            if login:
                raise InvalidConfigurationError(
                    "Token authentication and htaccess login can not be used simultaneously"
                )
            token = self.get_auth_token()
            if not token:
                raise InvalidConfigurationError(
                    f"No auth token found in ${self.config.remote.auth_token_key_name}"
                )
            headers["Authorization"] = f"Bearer {token}"
            return headers, None

        if login:
            user, sep, password = login.partition(":")
            if not sep:
                raise InvalidConfigurationError("The htaccess login must look like 'user:password'")
            return headers, httpx.BasicAuth(user, password)

        raise InvalidConfigurationError(
            "Either token authentication has to be active or a htaccess login has to be defined"
        )

    def _check_status(self, response: httpx.Response, server_url: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        if status in (401, 403):
            raise UnauthorizedError(f"{status} Unauthorized access")
        if status == 404:
            raise DumpNotFoundError(f"404 Not found: {server_url}")
        if status == 500:
            raise FailedRemoteDatabaseFetchingError(
                response.headers.get("message") or f"Remote server error at {server_url}"
            )
        raise FailedRemoteDatabaseFetchingError(f"Status code {status}")

    # ────────────── Fetch ───────────────────

    def fetch(self) -> str:
        """Pull the dump and return its disk-relative path.

        Raises:
            InvalidEnvironmentError: In production.
            InvalidConfigurationError: On missing or contradictory settings.
            UnauthorizedError: On 401/403.
            DumpNotFoundError: On 404.
            FailedRemoteDatabaseFetchingError: On any other failure, including an empty body.
        """
        if self.config.is_production:
            raise InvalidEnvironmentError("Fetching a remote dump is not allowed in production")

        private_key: bytes | None = None
        if self.config.should_encrypt:
            if not self.config.remote.private_key_name and self._private_key is None:
                raise InvalidConfigurationError("The private key env variable name is not set")
            raw_key = self.get_private_key()
            if not raw_key:
                raise InvalidConfigurationError(
                    "Token authentication requires a crypto key pair, but no private key was "
                    f"found in ${self.config.remote.private_key_name}"
                )
            private_key = load_key(raw_key, "private key")

        server_url = self.config.resolve("remote.server_url", "")
        if not server_url:
            raise InvalidConfigurationError("Server url is not set or invalid")

        headers, auth = self.build_request_options()
        base_directory = self.config.resolve("base_directory", "")
        if self.disk.missing(base_directory):
            try:
                self.disk.make_directory(base_directory)
            except OSError as exc:
                raise FailedCreatingDestinationPathError(
                    f"Could not create the destination path {base_directory}: {exc}"
                ) from exc

        log.info("remote_fetch_start", url=server_url, encrypted=private_key is not None)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.disk.path(base_directory), prefix=".dumpguard-", suffix=".sql.part"
        )
        os.close(fd)
        partial = str(PurePosixPath(base_directory) / os.path.basename(tmp_name))
        try:
            with httpx.Client(
                transport=self._transport,
                timeout=self.config.remote.http_timeout,
                follow_redirects=False,
            ) as client:
                with client.stream("POST", server_url, headers=headers, auth=auth) as response:
                    self._check_status(response, server_url)
                    destination = str(
                        PurePosixPath(base_directory)
                        / filename_from_disposition(response.headers.get("Content-Disposition"))
                    )
                    self._write(response, partial, private_key)
            if self.disk.size(partial) == 0:
                raise FailedRemoteDatabaseFetchingError(
                    f"Retrieved empty response from {server_url}"
                )
            self.disk.move(partial, destination)
        except httpx.HTTPError as exc:
            raise FailedRemoteDatabaseFetchingError(
                f"Could not fetch database from remote server: {exc}"
            ) from exc
        finally:
            self.disk.delete(partial)

        log.info("remote_fetch_complete", path=destination, size=self.disk.size(destination))
        return destination

    def _write(self, response: httpx.Response, destination: str, private_key: bytes | None) -> None:
        encrypted = response.headers.get(ENCRYPTION_HEADER, "").strip().lower() in _TRUTHY
        if encrypted and private_key is None:
            raise InvalidConfigurationError(
                "The remote dump is encrypted but token authentication is not configured"
            )

        try:
            chunk_size = int(response.headers.get(CHUNK_SIZE_HEADER, ""))
        except ValueError:
            if encrypted:
                raise FailedRemoteDatabaseFetchingError(
                    f"Encrypted response without a valid {CHUNK_SIZE_HEADER} header"
                ) from None
            chunk_size = self.config.chunk_size
        if chunk_size <= 0:
            raise FailedRemoteDatabaseFetchingError(f"Invalid {CHUNK_SIZE_HEADER}: {chunk_size}")

        with self.disk.open_write(destination) as fh:
            for chunk in response.iter_bytes(chunk_size=chunk_size):
                if not chunk:
                    break
                if encrypted:
                    chunk = open_sealed(chunk, private_key)  # type: ignore[arg-type]
                fh.write(chunk)
