"""Utility modules."""

from dataset_viewer.utils.paths import (
    basename,
    get_file_extension,
    guess_mime_type,
    normalize_path,
)

__all__ = [
    "basename",
    "get_file_extension",
    "guess_mime_type",
    "normalize_path",
]
