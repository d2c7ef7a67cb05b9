"""Buffered TAR and TAR.GZ support.

TAR has no central index, so the whole archive is fetched with
``read_full`` and walked in container order with ``tarfile``.
"""

import io
import tarfile
import zlib
from datetime import datetime, timezone

from dataset_viewer.archive.types import (
    ArchiveEntry,
    ArchiveFormat,
    ArchiveInfo,
    ArchiveLimits,
    FilePreview,
)
from dataset_viewer.exceptions import (
    ArchiveTooLargeError,
    BackendIOError,
    EntryNotFoundError,
    InvalidArchiveError,
    StorageError,
    UnsupportedFormatError,
)
from dataset_viewer.protocols import StorageBackend
from dataset_viewer.workers import run_blocking

_MODES = {
    ArchiveFormat.TAR: "r:",
    ArchiveFormat.TAR_GZ: "r:gz",
}

# What a damaged tar or gzip stream can raise while being walked
_READ_ERRORS = (tarfile.TarError, EOFError, OSError, zlib.error)


def _open(data: bytes, fmt: ArchiveFormat) -> tarfile.TarFile:
    mode = _MODES.get(fmt)
    if mode is None:
        raise UnsupportedFormatError(f"Not a TAR format: {fmt.value}")
    try:
        return tarfile.open(fileobj=io.BytesIO(data), mode=mode)
    except _READ_ERRORS as e:
        raise InvalidArchiveError(f"Invalid {fmt.value} archive: {e}") from e


def _to_entry(member: tarfile.TarInfo) -> ArchiveEntry:
    path = member.name
    name = path.rstrip("/").rsplit("/", 1)[-1] or path
    return ArchiveEntry(
        path=path,
        name=name,
        size=0 if member.isdir() else member.size,
        compressed_size=None,
        modified=datetime.fromtimestamp(member.mtime, tz=timezone.utc).isoformat(),
        is_directory=member.isdir(),
        is_encrypted=False,
        crc32=None,
    )


def read_tar_inventory(data: bytes, fmt: ArchiveFormat, max_entries: int) -> ArchiveInfo:
    """List up to ``max_entries`` members; all members are counted."""
    info = ArchiveInfo(format=fmt)
    with _open(data, fmt) as tar:
        try:
            for member in tar:
                info.total_entries += 1
                if len(info.entries) < max_entries:
                    entry = _to_entry(member)
                    info.entries.append(entry)
                    info.total_uncompressed_size += entry.size
        except _READ_ERRORS as e:
            raise InvalidArchiveError(f"Invalid {fmt.value} archive: {e}") from e

    # Plain TAR stores members uncompressed
    if fmt == ArchiveFormat.TAR:
        info.total_compressed_size = info.total_uncompressed_size
    else:
        info.total_compressed_size = len(data)
    info.has_more = len(info.entries) < info.total_entries
    return info


def extract_tar_entry(
    data: bytes,
    fmt: ArchiveFormat,
    target_path: str,
    max_size: int | None = None,
    offset: int | None = None,
    max_entry_size: int | None = None,
) -> FilePreview:
    """Return the content of the first member named ``target_path``."""
    skip = offset or 0
    with _open(data, fmt) as tar:
        try:
            for member in tar:
                if member.name != target_path:
                    continue

                total_size = 0 if member.isdir() else member.size
                if max_entry_size is not None and total_size > max_entry_size:
                    raise ArchiveTooLargeError(
                        f"Entry too large to preview: {total_size} bytes "
                        f"exceeds {max_entry_size}"
                    )

                content = b""
                f = tar.extractfile(member)
                if f is not None:
                    with f:
                        f.seek(skip)
                        content = f.read(-1 if max_size is None else max_size)

                return FilePreview(
                    content=content,
                    is_truncated=skip + len(content) < total_size,
                    total_size=total_size,
                    preview_size=len(content),
                    offset=skip,
                )
        except _READ_ERRORS as e:
            raise InvalidArchiveError(f"Invalid {fmt.value} archive: {e}") from e

    raise EntryNotFoundError(f"Entry not found in archive: {target_path}")


async def _read_archive(backend: StorageBackend, path: str) -> bytes:
    try:
        return await backend.read_full(path)
    except StorageError as e:
        raise BackendIOError(f"Failed to read archive: {e}") from e


async def tar_archive_info(
    backend: StorageBackend,
    path: str,
    fmt: ArchiveFormat,
    max_entries: int | None = None,
    limits: ArchiveLimits | None = None,
) -> ArchiveInfo:
    limits = limits or ArchiveLimits()
    cap = limits.default_max_entries if max_entries is None else max_entries
    data = await _read_archive(backend, path)
    return await run_blocking(read_tar_inventory, data, fmt, cap)


async def tar_extract_entry(
    backend: StorageBackend,
    archive_path: str,
    fmt: ArchiveFormat,
    target_path: str,
    max_size: int | None = None,
    offset: int | None = None,
    limits: ArchiveLimits | None = None,
) -> FilePreview:
    limits = limits or ArchiveLimits()
    data = await _read_archive(backend, archive_path)
    return await run_blocking(
        extract_tar_entry,
        data,
        fmt,
        target_path,
        max_size,
        offset,
        limits.max_entry_size,
    )
