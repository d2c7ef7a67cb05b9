"""Tests for the in-memory storage backend."""

import pytest

from dataset_viewer.backends.storage.memory import MemoryStorageBackend
from dataset_viewer.exceptions import NotConnectedError, StorageNotFoundError
from dataset_viewer.protocols import ConnectionDescriptor, ListOptions


class TestMemoryStorageBackend:
    """Tests for MemoryStorageBackend."""

    @pytest.mark.asyncio
    async def test_requires_connect(self) -> None:
        """Reads fail until connected."""
        backend = MemoryStorageBackend(files={"a.txt": b"a"})

        with pytest.raises(NotConnectedError):
            await backend.read_full("a.txt")

        await backend.connect(ConnectionDescriptor(protocol="memory"))
        assert await backend.read_full("a.txt") == b"a"

    @pytest.mark.asyncio
    async def test_records_reads(self, memory_backend) -> None:
        """Range reads are recorded with normalized paths."""
        await memory_backend.put("dir/file.bin", b"0123456789")

        assert await memory_backend.read_range("/dir//file.bin", 2, 3) == b"234"
        assert memory_backend.reads == [("dir/file.bin", 2, 3)]

    @pytest.mark.asyncio
    async def test_short_read_at_eof(self, memory_backend) -> None:
        """Reads past the end return the remainder."""
        await memory_backend.put("f", b"abc")
        assert await memory_backend.read_range("f", 1, 10) == b"bc"

    @pytest.mark.asyncio
    async def test_missing_file(self, memory_backend) -> None:
        """Missing files raise StorageNotFoundError."""
        with pytest.raises(StorageNotFoundError):
            await memory_backend.get_file_size("nope")

    @pytest.mark.asyncio
    async def test_list_directory(self, memory_backend) -> None:
        """Nested keys appear as directories."""
        await memory_backend.put("a.txt", b"a")
        await memory_backend.put("sub/b.txt", b"bb")
        await memory_backend.put("sub/deeper/c.txt", b"ccc")

        root = await memory_backend.list_directory("/", ListOptions(sort_by="name"))
        sub = await memory_backend.list_directory("sub", ListOptions(sort_by="name"))

        assert [(f.filename, f.file_type) for f in root.files] == [
            ("a.txt", "file"),
            ("sub", "directory"),
        ]
        assert [(f.filename, f.size) for f in sub.files] == [
            ("sub/b.txt", 2),
            ("sub/deeper", 0),
        ]

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, memory_backend) -> None:
        """An empty prefix raises StorageNotFoundError."""
        with pytest.raises(StorageNotFoundError):
            await memory_backend.list_directory("nothing")

    def test_protocol_url(self) -> None:
        assert MemoryStorageBackend().build_protocol_url("/a/b") == "memory://a/b"
