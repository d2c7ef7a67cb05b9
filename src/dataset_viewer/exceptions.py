"""Dataset viewer exceptions."""


class DatasetViewerError(Exception):
    """Base exception for dataset-viewer-core."""

    pass


class ConfigError(DatasetViewerError):
    """Configuration error."""

    pass


# Request-level taxonomy used by the archive engine


class BadRequestError(DatasetViewerError):
    """The request or the archive it points at cannot be processed."""

    pass


class UnsupportedFormatError(BadRequestError):
    """Archive format is unknown or not yet supported."""

    pass


class InvalidArchiveError(BadRequestError):
    """Archive structure is malformed (signature, EOCD, header)."""

    pass


class ArchiveTooLargeError(BadRequestError):
    """Archive, Central Directory or entry exceeds a hard limit."""

    pass


class UnsupportedCompressionError(BadRequestError):
    """Entry uses a compression method other than stored or deflate."""

    def __init__(self, method: int) -> None:
        super().__init__(f"Unsupported compression method: {method}")
        self.method = method


class NotFoundError(DatasetViewerError):
    """Resource not found."""

    pass


class SessionNotFoundError(NotFoundError):
    """Session not found."""

    pass


class EntryNotFoundError(NotFoundError):
    """Entry not found inside an archive."""

    pass


class InternalError(DatasetViewerError):
    """Unexpected failure while serving a request."""

    pass


class ShortReadError(InternalError):
    """A range read returned fewer bytes than an exact read required."""

    def __init__(self, what: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Short read on {what}: expected {expected} bytes, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class ExtractionError(InternalError):
    """Decompression of an entry failed."""

    pass


class BackendIOError(InternalError):
    """A storage backend failed while the archive engine was reading."""

    pass


# Errors raised by storage backends


class StorageError(DatasetViewerError):
    """Storage backend error."""

    pass


class NotConnectedError(StorageError):
    """Backend used before connect or after disconnect."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)


class ConnectionFailedError(StorageError):
    """Could not establish a connection to the storage service."""

    pass


class AuthenticationFailedError(StorageError):
    """Storage service rejected the credentials."""

    pass


class RequestFailedError(StorageError):
    """Storage service returned an unexpected response."""

    pass


class StorageNotFoundError(StorageError):
    """File or directory does not exist in the backend."""

    pass


class InvalidConfigError(StorageError):
    """Connection descriptor is missing fields or inconsistent."""

    pass


class ProtocolNotSupportedError(StorageError):
    """No backend is available for the requested protocol."""

    def __init__(self, protocol: str) -> None:
        super().__init__(f"Protocol not supported: {protocol}")
        self.protocol = protocol


class StorageIOError(StorageError):
    """Local I/O failure inside a backend."""

    pass


class NetworkError(StorageError):
    """Transport-level failure talking to a remote backend."""

    pass
