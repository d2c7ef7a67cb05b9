"""In-memory storage backend."""

import asyncio
from datetime import datetime, timezone
from typing import Any

from dataset_viewer.backends.storage.listing import apply_list_options
from dataset_viewer.exceptions import (
    NotConnectedError,
    ProtocolNotSupportedError,
    StorageNotFoundError,
)
from dataset_viewer.protocols.storage import (
    ConnectionDescriptor,
    DirectoryListing,
    FileInfo,
    ListOptions,
)
from dataset_viewer.utils.paths import guess_mime_type, normalize_path


class MemoryStorageBackend:
    """In-memory storage backend.

    Suitable for development and testing. Every range read is recorded in
    ``reads`` so callers can check how much of a file was touched.
    """

    protocol = "memory"
    aliases = ("memory",)

    def __init__(self, files: dict[str, bytes] | None = None, **kwargs: Any) -> None:
        """Initialize memory backend.

        Args:
            files: Initial contents keyed by path
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._files: dict[str, bytes] = {
            normalize_path(k): v for k, v in (files or {}).items()
        }
        self._connected = False
        self._lock = asyncio.Lock()
        self.reads: list[tuple[str, int, int]] = []
        self.created_at = datetime.now(timezone.utc).isoformat()

    def _require_connected(self) -> None:
        if not self._connected:
            raise NotConnectedError()

    def _get(self, path: str) -> bytes:
        key = normalize_path(path)
        if key not in self._files:
            raise StorageNotFoundError(f"File not found: {path}")
        return self._files[key]

    async def put(self, path: str, content: bytes) -> None:
        """Store a file. Available whether or not the backend is connected."""
        async with self._lock:
            self._files[normalize_path(path)] = content

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        if descriptor.protocol not in self.aliases:
            raise ProtocolNotSupportedError(descriptor.protocol)
        self._connected = True

    async def is_connected(self) -> bool:
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False

    async def get_file_size(self, path: str) -> int:
        self._require_connected()
        return len(self._get(path))

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        self._require_connected()
        data = self._get(path)
        self.reads.append((normalize_path(path), offset, length))
        return data[offset:offset + length]

    async def read_full(self, path: str) -> bytes:
        self._require_connected()
        data = self._get(path)
        self.reads.append((normalize_path(path), 0, len(data)))
        return data

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        self._require_connected()
        prefix = normalize_path(path)
        prefix = "" if prefix in ("", "/") else prefix + "/"

        async with self._lock:
            keys = [k for k in self._files if k.startswith(prefix)]

        files: dict[str, FileInfo] = {}
        for key in keys:
            name, sep, _ = key[len(prefix):].partition("/")
            if sep:
                files.setdefault(name, FileInfo(
                    filename=prefix + name,
                    basename=name,
                    lastmod=self.created_at,
                    size=0,
                    file_type="directory",
                ))
            else:
                files[name] = FileInfo(
                    filename=key,
                    basename=name,
                    lastmod=self.created_at,
                    size=len(self._files[key]),
                    file_type="file",
                    mime=guess_mime_type(name),
                )

        if prefix and not files:
            raise StorageNotFoundError(f"Directory not found: {path}")

        return apply_list_options(path, list(files.values()), options)

    def build_protocol_url(self, path: str) -> str:
        return f"memory://{normalize_path(path)}"
