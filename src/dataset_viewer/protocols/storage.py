"""StorageBackend protocol: the byte-range contract every backend satisfies."""

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class ConnectionDescriptor(BaseModel):
    """Protocol name plus protocol-specific connection fields.

    Frozen: a descriptor handed to a backend is never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    protocol: str
    url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str | None = None
    bucket: str | None = None
    endpoint: str | None = None
    username: str | None = None
    password: str | None = None
    # SSH
    port: int | None = None
    private_key_path: str | None = None
    passphrase: str | None = None
    root_path: str | None = None
    # SMB
    share: str | None = None
    domain: str | None = None
    extra_options: dict[str, str] | None = None

    def option(self, key: str, default: str | None = None) -> str | None:
        """Look up a value in ``extra_options``."""
        if not self.extra_options:
            return default
        return self.extra_options.get(key, default)


@dataclass(frozen=True)
class ListOptions:
    """Directory listing options."""

    page_size: int | None = None
    marker: str | None = None
    prefix: str | None = None
    recursive: bool | None = None
    sort_by: str | None = None  # name | size | modified
    sort_order: str | None = None  # asc | desc

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ListOptions | None":
        if data is None:
            return None
        return cls(
            page_size=data.get("page_size"),
            marker=data.get("marker"),
            prefix=data.get("prefix"),
            recursive=data.get("recursive"),
            sort_by=data.get("sort_by"),
            sort_order=data.get("sort_order"),
        )


@dataclass(frozen=True)
class FileInfo:
    """A single directory listing entry."""

    filename: str
    basename: str
    lastmod: str
    size: int
    file_type: str  # "file" or "directory"
    mime: str | None = None
    etag: str | None = None

    @property
    def is_directory(self) -> bool:
        return self.file_type == "directory"

    def to_dict(self) -> dict[str, Any]:
        # Sizes travel as strings so JavaScript clients keep full precision
        return {
            "filename": self.filename,
            "basename": self.basename,
            "lastmod": self.lastmod,
            "size": str(self.size),
            "type": self.file_type,
            "mime": self.mime,
            "etag": self.etag,
        }


@dataclass
class DirectoryListing:
    """Result of listing a directory."""

    path: str
    files: list[FileInfo] = field(default_factory=list)
    has_more: bool = False
    next_marker: str | None = None
    total_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "has_more": self.has_more,
            "next_marker": self.next_marker,
            "total_count": str(self.total_count) if self.total_count is not None else None,
            "path": self.path,
        }


@dataclass(frozen=True)
class ProgressInfo:
    """Progress of a long-running read or extraction."""

    current: int
    total: int
    percentage: float
    speed: int | None = None  # bytes per second
    eta: int | None = None  # seconds

    @classmethod
    def of(cls, current: int, total: int) -> "ProgressInfo":
        percentage = (current / total) * 100.0 if total > 0 else 100.0
        return cls(current=current, total=total, percentage=min(percentage, 100.0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
            "speed": self.speed,
            "eta": self.eta,
        }


ProgressCallback = Callable[[ProgressInfo], None]


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for storage backends (local disk, S3/OSS, WebDAV, HuggingFace).

    Every operation other than ``connect`` and ``is_connected`` raises
    ``NotConnectedError`` before ``connect`` or after ``disconnect``.
    """

    @property
    def protocol(self) -> str:
        """Canonical protocol name of the backend."""
        ...

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        """Validate the descriptor and open the connection."""
        ...

    async def is_connected(self) -> bool:
        """Whether ``connect`` succeeded and ``disconnect`` was not called."""
        ...

    async def disconnect(self) -> None:
        """Release the connection."""
        ...

    async def get_file_size(self, path: str) -> int:
        """Size of a file in bytes."""
        ...

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        """Read ``[offset, offset + length)``.

        Returns exactly ``length`` bytes unless the range runs past end of
        file, in which case the short remainder (possibly empty) is returned.
        """
        ...

    async def read_full(self, path: str) -> bytes:
        """Read the complete file."""
        ...

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        """List a directory."""
        ...

    def build_protocol_url(self, path: str) -> str:
        """Display URL for a path, e.g. ``s3://bucket/key``."""
        ...
