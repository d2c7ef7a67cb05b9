"""Local filesystem storage backend."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dataset_viewer.backends.storage.listing import apply_list_options
from dataset_viewer.exceptions import (
    InvalidConfigError,
    NotConnectedError,
    ProtocolNotSupportedError,
    StorageIOError,
    StorageNotFoundError,
)
from dataset_viewer.protocols.storage import (
    ConnectionDescriptor,
    DirectoryListing,
    FileInfo,
    ListOptions,
)
from dataset_viewer.utils.paths import guess_mime_type
from dataset_viewer.workers import run_blocking


class LocalStorageBackend:
    """Storage backend over the local filesystem.

    Paths are resolved under the descriptor's ``root_path`` (or ``url``).
    Without a root, paths are taken relative to the working directory.
    """

    protocol = "local"
    aliases = ("local", "file")

    def __init__(self, **kwargs: Any) -> None:
        self.root_path: Path | None = None
        self._connected = False

    def _require_connected(self) -> None:
        if not self._connected:
            raise NotConnectedError()

    def _resolve(self, path: str) -> Path:
        """Resolve a storage path, refusing anything that escapes the root."""
        relative = path.lstrip("/")
        if "\x00" in relative:
            raise InvalidConfigError(f"Invalid path: {path!r}")

        if self.root_path is None:
            return Path(relative or ".")

        target = (self.root_path / relative).resolve()
        try:
            target.relative_to(self.root_path)
        except ValueError:
            raise InvalidConfigError(f"Path escapes root: {path}") from None
        return target

    def _require_file(self, path: str) -> Path:
        file_path = self._resolve(path)
        if not file_path.exists():
            raise StorageNotFoundError(f"File not found: {path}")
        if not file_path.is_file():
            raise InvalidConfigError(f"Not a file: {path}")
        return file_path

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        if descriptor.protocol not in self.aliases:
            raise ProtocolNotSupportedError(descriptor.protocol)

        root = descriptor.root_path or descriptor.url
        if root:
            root_path = Path(root).expanduser()
            if not root_path.exists():
                raise StorageNotFoundError(f"Root path does not exist: {root}")
            if not root_path.is_dir():
                raise InvalidConfigError(f"Root path is not a directory: {root}")
            self.root_path = root_path.resolve()

        self._connected = True

    async def is_connected(self) -> bool:
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False
        self.root_path = None

    async def get_file_size(self, path: str) -> int:
        self._require_connected()
        file_path = self._resolve(path)

        def _size() -> int:
            if not file_path.exists():
                raise StorageNotFoundError(f"File not found: {path}")
            return file_path.stat().st_size

        try:
            return await run_blocking(_size)
        except OSError as e:
            raise StorageIOError(str(e)) from e

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        self._require_connected()
        if offset < 0 or length < 0:
            raise InvalidConfigError(f"Invalid range: offset={offset}, length={length}")

        def _read() -> bytes:
            file_path = self._require_file(path)
            with file_path.open("rb") as f:
                f.seek(offset)
                return f.read(length)

        try:
            return await run_blocking(_read)
        except OSError as e:
            raise StorageIOError(str(e)) from e

    async def read_full(self, path: str) -> bytes:
        self._require_connected()

        def _read() -> bytes:
            return self._require_file(path).read_bytes()

        try:
            return await run_blocking(_read)
        except OSError as e:
            raise StorageIOError(str(e)) from e

    def _file_info(self, entry: os.DirEntry) -> FileInfo:
        stat = entry.stat()
        is_dir = entry.is_dir()
        entry_path = Path(entry.path)
        if self.root_path is not None:
            entry_path = entry_path.relative_to(self.root_path)
        relative = entry_path.as_posix()
        return FileInfo(
            filename=relative,
            basename=entry.name,
            lastmod=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            size=0 if is_dir else stat.st_size,
            file_type="directory" if is_dir else "file",
            mime=None if is_dir else guess_mime_type(entry.name),
        )

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        self._require_connected()
        dir_path = self._resolve(path)

        def _scan() -> list[FileInfo]:
            if not dir_path.exists():
                raise StorageNotFoundError(f"Directory not found: {path}")
            if not dir_path.is_dir():
                raise InvalidConfigError(f"Not a directory: {path}")
            results = []
            with os.scandir(dir_path) as entries:
                for entry in entries:
                    try:
                        results.append(self._file_info(entry))
                    except OSError:
                        # Broken symlinks and races with deletion are skipped
                        continue
            return results

        try:
            files = await run_blocking(_scan)
        except OSError as e:
            raise StorageIOError(str(e)) from e

        return apply_list_options(path, files, options)

    def build_protocol_url(self, path: str) -> str:
        try:
            resolved = self._resolve(path)
        except InvalidConfigError:
            resolved = Path(path)
        return f"file://{resolved}"

    def __repr__(self) -> str:
        return f"LocalStorageBackend(root_path={self.root_path!s})"
