"""Custom exceptions for dumpguard."""


class DumpGuardError(Exception):
    """Base exception for all dumpguard errors."""


class InvalidConnectionError(DumpGuardError):
    """Raised when the database connection is not configured or cannot be resolved."""


class InvalidEnvironmentError(DumpGuardError):
    """Raised when a destructive operation is attempted on a production system."""


class InvalidConfigurationError(DumpGuardError):
    """Raised when remote or crypto configuration is missing or contradictory."""


class DecryptionError(InvalidConfigurationError):
    """Raised when an encrypted chunk cannot be opened with the configured key."""


class DumpNotFoundError(DumpGuardError):
    """Raised when a local dump file or the remote dump endpoint cannot be found."""


class EmptyBaseDirectoryError(DumpGuardError):
    """Raised when the dump directory exists but holds no files."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "There are no dumps in the dump folder")


class FailedCreatingDestinationPathError(DumpGuardError):
    """Raised when the dump destination directory cannot be created."""


class FailedDumpGenerationError(DumpGuardError):
    """Raised when the dump tool fails or the metadata trailer cannot be written."""


class FailedWipeError(DumpGuardError):
    """Raised when dropping/recreating the target database fails."""


class FailedImportError(DumpGuardError):
    """Raised when loading a dump into a wiped database fails."""


class FailedMigrationError(DumpGuardError):
    """Raised when the post-import migration command fails."""


class FailedRemoteDatabaseFetchingError(DumpGuardError):
    """Raised when fetching a dump from the remote server fails."""


class UnauthorizedError(DumpGuardError):
    """Raised when the remote server rejects the credentials."""


class InvalidMetadataProviderError(DumpGuardError):
    """Raised when a configured metadata provider does not fulfil the provider contract."""

    def __init__(self, provider: object) -> None:
        super().__init__(
            f"The configured metadata provider {provider!r} does not implement "
            f"get_key(), should_append() and get_metadata()"
        )
        self.provider = provider


class ShellAccessDeniedError(DumpGuardError):
    """Raised when external processes cannot be spawned."""

    def __init__(self, capabilities: dict[str, bool]) -> None:
        missing = ", ".join(name for name, ok in capabilities.items() if not ok)
        super().__init__(f"Process spawning is not available (missing: {missing})")
        self.capabilities = capabilities


class FailedShellCommandError(DumpGuardError):
    """Raised when an external command cannot be started or times out."""


class UnsupportedDatabaseError(DumpGuardError):
    """Raised when a connection uses a driver without a dump command builder."""
