"""Protocol interfaces for pluggable backends."""

from dataset_viewer.protocols.storage import (
    ConnectionDescriptor,
    DirectoryListing,
    FileInfo,
    ListOptions,
    ProgressCallback,
    ProgressInfo,
    StorageBackend,
)

__all__ = [
    "ConnectionDescriptor",
    "DirectoryListing",
    "FileInfo",
    "ListOptions",
    "ProgressCallback",
    "ProgressInfo",
    "StorageBackend",
]
