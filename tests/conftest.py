"""Pytest configuration and fixtures."""

import io
import struct
import tarfile
import zipfile
import zlib
from typing import Any, Callable, Iterator

import pytest

from dataset_viewer.backends.storage.memory import MemoryStorageBackend
from dataset_viewer.notifications import NotificationHub
from dataset_viewer.observability import register_metric_callback, unregister_metric_callback
from dataset_viewer.protocols import ConnectionDescriptor
from dataset_viewer.sessions import SessionRegistry

# 2024-01-15 12:30:20
DOS_DATE = ((2024 - 1980) << 9) | (1 << 5) | 15
DOS_TIME = (12 << 11) | (30 << 5) | 10


def _build_zip(files: dict[str, bytes], compression: int = zipfile.ZIP_STORED, comment: bytes = b"") -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
        zf.comment = comment
    return buffer.getvalue()


def _build_raw_zip(
    entries: list[dict[str, Any]],
    comment: bytes = b"",
    total_entries: int | None = None,
    cd_size: int | None = None,
    cd_offset: int | None = None,
) -> bytes:
    """Assemble a ZIP byte by byte so headers can disagree with the data.

    Entry keys: name, data, method (0), payload (defaults to ``data``, raw
    deflated when method is 8), uncompressed_size, external_attr, flags,
    local_extra.
    """
    body = bytearray()
    central = bytearray()
    for entry in entries:
        name = entry["name"].encode("utf-8")
        data = entry.get("data", b"")
        method = entry.get("method", 0)
        payload = entry.get("payload")
        if payload is None:
            if method == 8:
                compressor = zlib.compressobj(6, zlib.DEFLATED, -zlib.MAX_WBITS)
                payload = compressor.compress(data) + compressor.flush()
            else:
                payload = data
        uncompressed_size = entry.get("uncompressed_size", len(data))
        flags = entry.get("flags", 0)
        local_extra = entry.get("local_extra", b"")
        crc = zlib.crc32(data)
        offset = len(body)

        body += struct.pack(
            "<4s5H3I2H",
            b"PK\x03\x04", 20, flags, method, DOS_TIME, DOS_DATE,
            crc, len(payload), uncompressed_size, len(name), len(local_extra),
        )
        body += name + local_extra + payload

        central += struct.pack(
            "<4s6H3I5H2I",
            b"PK\x01\x02", 20, 20, flags, method, DOS_TIME, DOS_DATE,
            crc, len(payload), uncompressed_size, len(name), 0, 0, 0, 0,
            entry.get("external_attr", 0), offset,
        )
        central += name

    count = len(entries) if total_entries is None else total_entries
    eocd = struct.pack(
        "<4s4H2IH",
        b"PK\x05\x06", 0, 0, count, count,
        len(central) if cd_size is None else cd_size,
        len(body) if cd_offset is None else cd_offset,
        len(comment),
    )
    return bytes(body + central + eocd + comment)


def _build_tar(files: dict[str, bytes], compression: str = "") -> bytes:
    buffer = io.BytesIO()
    mode = f"w:{compression}" if compression else "w"
    with tarfile.open(fileobj=buffer, mode=mode) as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = 1700000000
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Build a well-formed ZIP with the standard library."""
    return _build_zip


@pytest.fixture
def make_raw_zip() -> Callable[..., bytes]:
    """Build a ZIP by hand, for malformed and edge-case archives."""
    return _build_raw_zip


@pytest.fixture
def make_tar() -> Callable[..., bytes]:
    """Build a TAR (or TAR.GZ with ``compression="gz"``)."""
    return _build_tar


@pytest.fixture
async def memory_backend() -> MemoryStorageBackend:
    """A connected, empty memory backend."""
    backend = MemoryStorageBackend()
    await backend.connect(ConnectionDescriptor(protocol="memory"))
    return backend


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub()


@pytest.fixture
def registry(memory_backend: MemoryStorageBackend) -> SessionRegistry:
    """Registry whose memory sessions all share ``memory_backend``."""
    return SessionRegistry(backend_factory=lambda protocol: memory_backend)


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Sample configuration dictionary for testing."""
    return {
        "server": {"host": "0.0.0.0", "port": 9000},
        "storage": {"allow_local_files": False, "session_timeout_minutes": 15},
        "archive": {"default_max_entries": 500, "max_entry_size": 1048576},
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture
def metrics() -> Iterator[list[tuple[str, float, dict]]]:
    """Collect emitted metrics as ``(name, value, labels)`` tuples."""
    received: list[tuple[str, float, dict]] = []

    def callback(name: str, value: float, labels: dict) -> None:
        received.append((name, value, labels))

    register_metric_callback(callback)
    yield received
    unregister_metric_callback(callback)
