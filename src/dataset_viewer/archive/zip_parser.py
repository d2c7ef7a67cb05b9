"""Streaming ZIP inventory: EOCD location and Central Directory parsing.

Only the archive's tail and its Central Directory are read, with a handful
of bounded range reads, so listing a multi-hundred-gigabyte archive costs a
few kilobytes of I/O. Every offset and length taken from the archive is
checked before it is used.
"""

import struct
from collections.abc import Iterator
from dataclasses import dataclass

from dataset_viewer.archive.types import (
    ArchiveEntry,
    ArchiveFormat,
    ArchiveInfo,
    ArchiveLimits,
    CentralDirectoryEntry,
    EndOfCentralDirectoryRecord,
)
from dataset_viewer.exceptions import (
    ArchiveTooLargeError,
    BackendIOError,
    InvalidArchiveError,
    ShortReadError,
    StorageError,
)
from dataset_viewer.observability import Timer, get_logger
from dataset_viewer.protocols import StorageBackend
from dataset_viewer.workers import run_blocking

logger = get_logger(__name__)

LOCAL_FILE_HEADER_SIGNATURE = b"PK\x03\x04"
CENTRAL_DIRECTORY_SIGNATURE = b"PK\x01\x02"
EOCD_SIGNATURE = b"PK\x05\x06"

EOCD_SIZE = 22
CENTRAL_DIRECTORY_HEADER_SIZE = 46
LOCAL_FILE_HEADER_SIZE = 30

# total entries @10, CD size @12, CD offset @16, comment length @20
_EOCD_FIELDS = struct.Struct("<HIIH")
# Central Directory file header, 46 bytes
_CD_HEADER = struct.Struct("<4s6H3I5H2I")

DOS_EPOCH = 315532800  # 1980-01-01T00:00:00Z


@dataclass(frozen=True)
class CentralDirectory:
    """Raw Central Directory bytes plus the record that located them."""

    data: bytes
    eocd: EndOfCentralDirectoryRecord
    file_size: int


def find_eocd(data: bytes) -> int | None:
    """Find the EOCD record in a tail window, scanning backwards.

    A signature match is accepted only when its comment length reaches the
    end of ``data`` exactly, which rules out ``PK\\x05\\x06`` sequences
    embedded in a comment. The accepted match nearest the end wins.

    Returns:
        Position of the record within ``data``, or None
    """
    if len(data) < EOCD_SIZE:
        return None

    # rfind only reports matches lying wholly before ``end``
    end = len(data) - EOCD_SIZE + len(EOCD_SIGNATURE)
    while True:
        pos = data.rfind(EOCD_SIGNATURE, 0, end)
        if pos < 0:
            return None
        (comment_length,) = struct.unpack_from("<H", data, pos + 20)
        if pos + EOCD_SIZE + comment_length == len(data):
            return pos
        end = pos + len(EOCD_SIGNATURE) - 1


def parse_eocd(data: bytes, position: int) -> EndOfCentralDirectoryRecord:
    total_entries, cd_size, cd_offset, comment_length = _EOCD_FIELDS.unpack_from(
        data, position + 10
    )
    return EndOfCentralDirectoryRecord(
        position=position,
        total_entries=total_entries,
        central_directory_size=cd_size,
        central_directory_offset=cd_offset,
        comment_length=comment_length,
    )


def dos_datetime_to_timestamp(dos_date: int, dos_time: int) -> int:
    """Approximate Unix timestamp of a DOS date/time pair.

    Months count as 30 days and leap years are ignored, so results drift
    from the calendar date. Displayed timestamps rely on these exact values.
    """
    year = ((dos_date >> 9) & 0x7F) + 1980
    month = (dos_date >> 5) & 0x0F
    day = dos_date & 0x1F

    hour = (dos_time >> 11) & 0x1F
    minute = (dos_time >> 5) & 0x3F
    second = (dos_time & 0x1F) * 2

    days = (year - 1980) * 365 + (month - 1) * 30 + day
    return DOS_EPOCH + days * 86400 + hour * 3600 + minute * 60 + second


def iter_central_directory(data: bytes) -> Iterator[tuple[CentralDirectoryEntry, bytes]]:
    """Yield ``(entry, raw_name)`` for each well-formed record in order.

    Iteration stops at the first record that overruns the buffer or does not
    start with the Central Directory signature; the entries before it stand.
    """
    offset = 0
    size = len(data)
    while offset + CENTRAL_DIRECTORY_HEADER_SIZE <= size:
        (
            signature,
            _version_made_by,
            _version_needed,
            flags,
            method,
            dos_time,
            dos_date,
            crc32,
            compressed_size,
            uncompressed_size,
            name_length,
            extra_length,
            comment_length,
            _disk_start,
            _internal_attributes,
            external_attributes,
            local_header_offset,
        ) = _CD_HEADER.unpack_from(data, offset)

        if signature != CENTRAL_DIRECTORY_SIGNATURE:
            logger.warning(
                "Bad Central Directory signature, truncating entry list",
                context={"offset": offset},
            )
            return

        record_length = CENTRAL_DIRECTORY_HEADER_SIZE + name_length + extra_length + comment_length
        if offset + record_length > size:
            return

        name_start = offset + CENTRAL_DIRECTORY_HEADER_SIZE
        raw_name = data[name_start:name_start + name_length]

        yield CentralDirectoryEntry(
            name=raw_name.decode("utf-8", errors="replace"),
            compression_method=method,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            crc32=crc32,
            external_attributes=external_attributes,
            dos_date=dos_date,
            dos_time=dos_time,
            local_header_offset=local_header_offset,
            flags=flags,
            record_length=record_length,
        ), raw_name

        offset += record_length


def to_archive_entry(entry: CentralDirectoryEntry) -> ArchiveEntry:
    is_dir = entry.is_directory
    return ArchiveEntry(
        path=entry.name,
        name=entry.name,
        size=0 if is_dir else entry.uncompressed_size,
        compressed_size=entry.compressed_size,
        modified=str(dos_datetime_to_timestamp(entry.dos_date, entry.dos_time)),
        is_directory=is_dir,
        is_encrypted=entry.is_encrypted,
        crc32=entry.crc32,
    )


def parse_central_directory(
    data: bytes,
    total_entries: int,
    max_entries: int,
) -> ArchiveInfo:
    """Decode at most ``min(max_entries, total_entries)`` records.

    ``has_more`` is set whenever fewer records were decoded than the EOCD
    announced, whether from the cap or from a truncated buffer.
    """
    limit = min(max_entries, total_entries)
    info = ArchiveInfo(format=ArchiveFormat.ZIP, total_entries=total_entries)

    if limit > 0:
        for cd_entry, _ in iter_central_directory(data):
            entry = to_archive_entry(cd_entry)
            info.entries.append(entry)
            info.total_uncompressed_size += entry.size
            info.total_compressed_size += cd_entry.compressed_size
            if len(info.entries) >= limit:
                break

    info.has_more = len(info.entries) < total_entries
    return info


async def read_range(
    backend: StorageBackend,
    path: str,
    offset: int,
    length: int,
    what: str,
) -> bytes:
    """Range read with backend failures surfaced as ``BackendIOError``."""
    with Timer() as timer:
        try:
            data = await backend.read_range(path, offset, length)
        except StorageError as e:
            raise BackendIOError(f"Failed to read {what}: {e}") from e

    logger.debug(
        f"Read {what}",
        context={"offset": offset, "length": length, "received": len(data)},
        duration_ms=timer.duration_ms,
    )
    return data


async def read_exact(
    backend: StorageBackend,
    path: str,
    offset: int,
    length: int,
    what: str,
) -> bytes:
    """Range read that must return exactly ``length`` bytes."""
    data = await read_range(backend, path, offset, length, what)
    if len(data) != length:
        raise ShortReadError(what, length, len(data))
    return data


async def read_central_directory(
    backend: StorageBackend,
    path: str,
    limits: ArchiveLimits | None = None,
) -> CentralDirectory:
    """Locate and fetch a ZIP archive's Central Directory.

    Raises:
        ArchiveTooLargeError: File, entry count or Central Directory over a limit
        InvalidArchiveError: Not a ZIP file, or no valid EOCD record
        ShortReadError: A range read came back shorter than required
        BackendIOError: The backend failed a read
    """
    limits = limits or ArchiveLimits()

    try:
        file_size = await backend.get_file_size(path)
    except StorageError as e:
        raise BackendIOError(f"Failed to get file size: {e}") from e

    if file_size < EOCD_SIZE:
        raise InvalidArchiveError(
            f"File too small to be a ZIP archive ({file_size} bytes < {EOCD_SIZE} bytes)"
        )
    if file_size > limits.max_archive_size:
        raise ArchiveTooLargeError(
            f"ZIP file too large: {file_size} bytes exceeds {limits.max_archive_size}"
        )

    header = await read_exact(backend, path, 0, 4, "file header")
    if header != LOCAL_FILE_HEADER_SIGNATURE:
        raise InvalidArchiveError("File is not a valid ZIP archive")

    tail_size = min(limits.tail_window_size, file_size)
    tail = await read_exact(backend, path, file_size - tail_size, tail_size, "tail window")

    position = await run_blocking(find_eocd, tail)
    if position is None:
        raise InvalidArchiveError(
            "End of Central Directory record not found; file may be corrupt"
        )
    eocd = parse_eocd(tail, position)

    if eocd.total_entries > limits.max_total_entries:
        raise ArchiveTooLargeError(
            f"Too many entries: {eocd.total_entries} exceeds {limits.max_total_entries}"
        )
    if eocd.central_directory_size > file_size:
        raise InvalidArchiveError(
            f"Central Directory size ({eocd.central_directory_size}) "
            f"exceeds file size ({file_size})"
        )
    if eocd.central_directory_size > limits.max_central_directory_size:
        raise ArchiveTooLargeError(
            f"Central Directory too large: {eocd.central_directory_size} bytes"
        )

    data = await read_exact(
        backend,
        path,
        eocd.central_directory_offset,
        eocd.central_directory_size,
        "central directory",
    )
    return CentralDirectory(data=data, eocd=eocd, file_size=file_size)


async def locate_archive_inventory(
    backend: StorageBackend,
    path: str,
    max_entries: int | None = None,
    limits: ArchiveLimits | None = None,
) -> ArchiveInfo:
    """List a ZIP archive's entries from its Central Directory.

    Args:
        backend: Connected storage backend holding the archive
        path: Archive path within the backend
        max_entries: Cap on returned entries (defaults to
            ``limits.default_max_entries``)
        limits: Hard limits; defaults apply when omitted
    """
    limits = limits or ArchiveLimits()
    cap = limits.default_max_entries if max_entries is None else max_entries

    directory = await read_central_directory(backend, path, limits)
    info = await run_blocking(
        parse_central_directory,
        directory.data,
        directory.eocd.total_entries,
        cap,
    )

    logger.debug(
        "Parsed Central Directory",
        context={
            "total_entries": info.total_entries,
            "parsed": len(info.entries),
            "has_more": info.has_more,
        },
    )
    return info
