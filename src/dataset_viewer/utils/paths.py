"""Path helpers shared by the storage backends."""

import mimetypes
import posixpath

# Types the mimetypes registry does not know or gets wrong for datasets
_EXTRA_MIME_TYPES = {
    "parquet": "application/x-parquet",
    "jsonl": "application/x-ndjson",
    "md": "text/markdown",
    "yaml": "application/x-yaml",
    "yml": "application/x-yaml",
    "toml": "application/toml",
    "7z": "application/x-7z-compressed",
    "rar": "application/vnd.rar",
    "ts": "application/typescript",
}


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes and strip leading/trailing ones.

    The root path "/" is preserved as is.
    """
    path = path.strip()
    while "//" in path:
        path = path.replace("//", "/")
    if path.startswith("/") and len(path) > 1:
        path = path[1:]
    if path.endswith("/") and len(path) > 1:
        path = path[:-1]
    return path


def get_file_extension(filename: str) -> str | None:
    """Lower-cased final extension without the dot."""
    _, ext = posixpath.splitext(filename)
    return ext[1:].lower() if ext else None


def basename(path: str) -> str:
    """Final path component, ignoring a trailing slash."""
    stripped = path.rstrip("/")
    return posixpath.basename(stripped) or stripped


def guess_mime_type(filename: str) -> str:
    ext = get_file_extension(filename)
    if ext in _EXTRA_MIME_TYPES:
        return _EXTRA_MIME_TYPES[ext]
    mime, _ = mimetypes.guess_type(filename, strict=False)
    return mime or "application/octet-stream"
