"""Archive data types shared by the ZIP parser, extractor and TAR reader."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dataset_viewer.config import ArchiveConfig, GIB, KIB, MIB


class ArchiveFormat(str, Enum):
    """Archive container formats, derived from the file extension."""

    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar_gz"
    TAR_BZ2 = "tar_bz2"
    TAR_XZ = "tar_xz"
    SEVEN_ZIP = "seven_zip"
    RAR = "rar"
    GZIP = "gzip"
    UNKNOWN = "unknown"

    @classmethod
    def from_path(cls, path: str) -> "ArchiveFormat":
        """Detect the format from a path's extension (case-insensitive).

        Compound suffixes such as ``.tar.gz`` win over their last component.
        """
        name = path.rsplit("/", 1)[-1].lower()
        for suffix, fmt in _SUFFIXES:
            if name.endswith(suffix):
                return fmt
        return cls.UNKNOWN

    @property
    def is_supported(self) -> bool:
        return self in (ArchiveFormat.ZIP, ArchiveFormat.TAR, ArchiveFormat.TAR_GZ)


# Longest suffixes first so ".tar.gz" is not read as ".gz"
_SUFFIXES: tuple[tuple[str, ArchiveFormat], ...] = (
    (".tar.bz2", ArchiveFormat.TAR_BZ2),
    (".tar.gz", ArchiveFormat.TAR_GZ),
    (".tar.xz", ArchiveFormat.TAR_XZ),
    (".tbz2", ArchiveFormat.TAR_BZ2),
    (".tbz", ArchiveFormat.TAR_BZ2),
    (".tgz", ArchiveFormat.TAR_GZ),
    (".txz", ArchiveFormat.TAR_XZ),
    (".zip", ArchiveFormat.ZIP),
    (".tar", ArchiveFormat.TAR),
    (".rar", ArchiveFormat.RAR),
    (".7z", ArchiveFormat.SEVEN_ZIP),
    (".gz", ArchiveFormat.GZIP),
)


@dataclass(frozen=True)
class ArchiveLimits:
    """Hard ceilings applied while parsing untrusted archives."""

    default_max_entries: int = 10_000
    max_archive_size: int = 500 * GIB
    max_total_entries: int = 1_000_000
    max_central_directory_size: int = 500 * MIB
    max_entry_size: int = 100 * MIB
    tail_window_size: int = 64 * KIB

    @classmethod
    def from_config(cls, config: ArchiveConfig) -> "ArchiveLimits":
        return cls(
            default_max_entries=config.default_max_entries,
            max_archive_size=config.max_archive_size,
            max_total_entries=config.max_total_entries,
            max_central_directory_size=config.max_central_directory_size,
            max_entry_size=config.max_entry_size,
            tail_window_size=config.tail_window_size,
        )


@dataclass(frozen=True)
class EndOfCentralDirectoryRecord:
    """The EOCD record found in the tail window.

    ``position`` is relative to the tail window, and
    ``position + 22 + comment_length`` equals the window's length.
    """

    position: int
    total_entries: int
    central_directory_size: int
    central_directory_offset: int
    comment_length: int


@dataclass(frozen=True)
class CentralDirectoryEntry:
    """One decoded Central Directory file header."""

    name: str
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    crc32: int
    external_attributes: int
    dos_date: int
    dos_time: int
    local_header_offset: int
    flags: int = 0
    record_length: int = 0

    @property
    def is_directory(self) -> bool:
        return self.name.endswith("/") or bool(self.external_attributes & 0x10)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & 0x1)


@dataclass(frozen=True)
class LocalFileHeader:
    """Fields of a Local File Header needed to find the entry's data."""

    compression_method: int
    filename_length: int
    extra_length: int

    @property
    def header_length(self) -> int:
        return 30 + self.filename_length + self.extra_length


@dataclass
class ArchiveEntry:
    """Public view of one archive member."""

    path: str
    name: str
    size: int
    compressed_size: int | None = None
    modified: str | None = None
    is_directory: bool = False
    is_encrypted: bool = False
    crc32: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "size": self.size,
            "compressed_size": self.compressed_size,
            "modified": self.modified,
            "is_directory": self.is_directory,
            "is_encrypted": self.is_encrypted,
            "crc32": self.crc32,
        }


@dataclass
class ArchiveInfo:
    """Inventory of an archive, possibly capped at a number of entries."""

    format: ArchiveFormat
    entries: list[ArchiveEntry] = field(default_factory=list)
    total_entries: int = 0
    total_uncompressed_size: int = 0
    total_compressed_size: int = 0
    has_more: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "total_entries": self.total_entries,
            "total_uncompressed_size": self.total_uncompressed_size,
            "total_compressed_size": self.total_compressed_size,
            "format": self.format.value,
            "has_more": self.has_more,
        }


@dataclass
class FilePreview:
    """Decoded (possibly truncated) content of one archive member."""

    content: bytes
    is_truncated: bool
    total_size: int
    preview_size: int
    offset: int = 0

    def to_dict(self) -> dict[str, Any]:
        # Content as a list of byte values, matching what clients decode
        return {
            "content": list(self.content),
            "is_truncated": self.is_truncated,
            "total_size": self.total_size,
            "preview_size": self.preview_size,
            "offset": self.offset,
        }
