"""Archive inventory and entry extraction over byte-range storage."""

from dataset_viewer.archive.service import ArchiveService, detect_format
from dataset_viewer.archive.types import (
    ArchiveEntry,
    ArchiveFormat,
    ArchiveInfo,
    ArchiveLimits,
    CentralDirectoryEntry,
    EndOfCentralDirectoryRecord,
    FilePreview,
    LocalFileHeader,
)
from dataset_viewer.archive.zip_extractor import extract_entry
from dataset_viewer.archive.zip_parser import find_eocd, locate_archive_inventory

__all__ = [
    "ArchiveEntry",
    "ArchiveFormat",
    "ArchiveInfo",
    "ArchiveLimits",
    "ArchiveService",
    "CentralDirectoryEntry",
    "EndOfCentralDirectoryRecord",
    "FilePreview",
    "LocalFileHeader",
    "detect_format",
    "extract_entry",
    "find_eocd",
    "locate_archive_inventory",
]
