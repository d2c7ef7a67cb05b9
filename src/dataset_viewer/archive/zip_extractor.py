"""Selective extraction of a single ZIP entry via bounded range reads."""

import struct
import zlib

from dataset_viewer.archive.types import (
    ArchiveLimits,
    CentralDirectoryEntry,
    FilePreview,
    LocalFileHeader,
)
from dataset_viewer.archive.zip_parser import (
    LOCAL_FILE_HEADER_SIGNATURE,
    LOCAL_FILE_HEADER_SIZE,
    iter_central_directory,
    read_central_directory,
    read_exact,
)
from dataset_viewer.exceptions import (
    ArchiveTooLargeError,
    EntryNotFoundError,
    ExtractionError,
    InvalidArchiveError,
    UnsupportedCompressionError,
    UnsupportedFormatError,
)
from dataset_viewer.observability import get_logger
from dataset_viewer.protocols import ProgressCallback, ProgressInfo, StorageBackend
from dataset_viewer.workers import run_blocking

logger = get_logger(__name__)

METHOD_STORED = 0
METHOD_DEFLATE = 8

# signature, version, flags, method, time, date, crc32, sizes, name/extra lengths
_LOCAL_HEADER = struct.Struct("<4s5H3I2H")


def find_entry(data: bytes, target_path: str) -> CentralDirectoryEntry | None:
    """Scan Central Directory bytes for an exact (byte-for-byte) name match."""
    target = target_path.encode("utf-8")
    for entry, raw_name in iter_central_directory(data):
        if raw_name == target:
            return entry
    return None


def parse_local_file_header(data: bytes) -> LocalFileHeader:
    """Decode a 30-byte Local File Header.

    Raises:
        InvalidArchiveError: If the signature does not match
    """
    (
        signature,
        _version,
        _flags,
        method,
        _time,
        _date,
        _crc32,
        _compressed_size,
        _uncompressed_size,
        filename_length,
        extra_length,
    ) = _LOCAL_HEADER.unpack_from(data)
    if signature != LOCAL_FILE_HEADER_SIGNATURE:
        raise InvalidArchiveError("Invalid Local File Header signature")
    return LocalFileHeader(
        compression_method=method,
        filename_length=filename_length,
        extra_length=extra_length,
    )


class CappedInflater:
    """Incremental raw-deflate decoder that stops at an output cap.

    Example:
        inflater = CappedInflater(1024)
        while not inflater.done:
            inflater.feed(next_chunk())
    """

    def __init__(self, max_output: int) -> None:
        self.max_output = max_output
        self.output = bytearray()
        self._inflater = zlib.decompressobj(-zlib.MAX_WBITS)

    @property
    def finished(self) -> bool:
        """Whether the end of the deflate stream was reached."""
        return self._inflater.eof

    @property
    def done(self) -> bool:
        return self.finished or len(self.output) >= self.max_output

    def feed(self, data: bytes) -> None:
        """Inflate the next chunk of compressed input.

        Output past ``max_output`` is never produced.

        Raises:
            ExtractionError: If the stream is corrupt
        """
        if self.done:
            return
        remaining = self.max_output - len(self.output)
        try:
            self.output += self._inflater.decompress(data, remaining)
        except zlib.error as e:
            raise ExtractionError(f"Deflate decompression failed: {e}") from e


async def _inflate_window(
    backend: StorageBackend,
    archive_path: str,
    data_offset: int,
    compressed_size: int,
    cap: int,
    progress: ProgressCallback | None,
) -> bytes:
    """Inflate the first ``cap`` bytes of a deflated entry.

    The first read is ``min(cap, compressed_size)`` bytes. When that input
    inflates to less than ``cap`` (small reads are dominated by the block
    header), further reads of doubling size follow until the cap is met or
    the compressed data is exhausted.

    Raises:
        ExtractionError: If the compressed data ends before the deflate
            stream does and the cap was not reached
    """
    if cap <= 0:
        return b""

    inflater = CappedInflater(cap)
    position = 0
    read_size = min(cap, compressed_size)

    while True:
        chunk = await read_exact(
            backend,
            archive_path,
            data_offset + position,
            read_size,
            "entry data",
        )
        position += len(chunk)
        if progress is not None:
            progress(ProgressInfo.of(position, compressed_size))

        await run_blocking(inflater.feed, chunk)
        if inflater.done:
            return bytes(inflater.output)
        if position >= compressed_size:
            raise ExtractionError("Deflate stream ended prematurely")
        read_size = min(read_size * 2, compressed_size - position)


async def extract_entry(
    backend: StorageBackend,
    archive_path: str,
    target_path: str,
    max_size: int | None = None,
    offset: int | None = None,
    progress: ProgressCallback | None = None,
    limits: ArchiveLimits | None = None,
) -> FilePreview:
    """Extract one entry (or a window of it) from a remote ZIP archive.

    Output never exceeds the entry's declared uncompressed size: data past
    it, in either the stored payload or the inflated stream, is dropped.

    Args:
        backend: Connected storage backend holding the archive
        archive_path: Archive path within the backend
        target_path: Exact entry name as stored in the Central Directory
        max_size: Cap on returned bytes
        offset: Start position within the entry's uncompressed content
        progress: Called with payload read progress
        limits: Hard limits; defaults apply when omitted

    Raises:
        EntryNotFoundError: No entry with that exact name
        ArchiveTooLargeError: Entry exceeds the preview ceiling
        UnsupportedCompressionError: Entry uses neither stored nor deflate
        ExtractionError: The deflate stream is corrupt or truncated
    """
    limits = limits or ArchiveLimits()
    skip = offset or 0

    directory = await read_central_directory(backend, archive_path, limits)
    entry = await run_blocking(find_entry, directory.data, target_path)
    if entry is None:
        raise EntryNotFoundError(f"Entry not found in archive: {target_path}")

    if entry.uncompressed_size > limits.max_entry_size:
        raise ArchiveTooLargeError(
            f"Entry too large to preview: {entry.uncompressed_size} bytes "
            f"exceeds {limits.max_entry_size}"
        )
    if entry.is_encrypted:
        raise UnsupportedFormatError(f"Encrypted entries are not supported: {target_path}")
    if entry.compression_method not in (METHOD_STORED, METHOD_DEFLATE):
        raise UnsupportedCompressionError(entry.compression_method)

    header_bytes = await read_exact(
        backend,
        archive_path,
        entry.local_header_offset,
        LOCAL_FILE_HEADER_SIZE,
        "local file header",
    )
    header = parse_local_file_header(header_bytes)
    data_offset = entry.local_header_offset + header.header_length
    compressed_size = entry.compressed_size
    total_size = entry.uncompressed_size
    end = total_size if max_size is None else min(skip + max_size, total_size)

    if progress is not None:
        progress(ProgressInfo.of(0, compressed_size))

    if entry.compression_method == METHOD_DEFLATE:
        # Deflate must be decoded from the beginning of the stream
        content = await _inflate_window(
            backend,
            archive_path,
            data_offset,
            compressed_size,
            end,
            progress,
        )
        content = content[skip:]
    else:
        # Stored bytes are addressable directly
        stored_end = min(end, compressed_size)
        start = min(skip, stored_end)
        read_size = stored_end - start
        content = await read_exact(
            backend,
            archive_path,
            data_offset + start,
            read_size,
            "entry data",
        )
        if progress is not None:
            progress(ProgressInfo.of(start + read_size, compressed_size))

    preview_size = len(content)
    logger.debug(
        "Extracted entry",
        context={
            "entry": target_path,
            "method": entry.compression_method,
            "compressed_size": compressed_size,
            "preview_size": preview_size,
        },
    )
    return FilePreview(
        content=content,
        is_truncated=skip + preview_size < total_size,
        total_size=total_size,
        preview_size=preview_size,
        offset=skip,
    )
