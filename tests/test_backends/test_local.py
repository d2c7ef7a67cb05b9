"""Tests for the local filesystem storage backend."""

import pytest

from dataset_viewer.backends.storage.local import LocalStorageBackend
from dataset_viewer.exceptions import (
    InvalidConfigError,
    NotConnectedError,
    ProtocolNotSupportedError,
    StorageNotFoundError,
)
from dataset_viewer.protocols import ConnectionDescriptor, ListOptions, StorageBackend


@pytest.fixture
def root(tmp_path):
    """A directory tree with a few files."""
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "train.csv").write_bytes(b"id,label\n1,cat\n")
    (tmp_path / "data" / "big.bin").write_bytes(bytes(range(256)) * 4)
    (tmp_path / "README.md").write_bytes(b"# Readme\n")
    return tmp_path


@pytest.fixture
async def backend(root):
    """A backend connected to the temporary root."""
    backend = LocalStorageBackend()
    await backend.connect(ConnectionDescriptor(protocol="local", root_path=str(root)))
    yield backend
    await backend.disconnect()


class TestLocalStorageBackend:
    """Tests for LocalStorageBackend."""

    def test_satisfies_protocol(self) -> None:
        """The backend implements the storage protocol."""
        assert isinstance(LocalStorageBackend(), StorageBackend)

    @pytest.mark.asyncio
    async def test_operations_require_connect(self) -> None:
        """Every I/O operation fails before connect."""
        backend = LocalStorageBackend()

        assert await backend.is_connected() is False
        with pytest.raises(NotConnectedError):
            await backend.get_file_size("README.md")
        with pytest.raises(NotConnectedError):
            await backend.read_range("README.md", 0, 1)
        with pytest.raises(NotConnectedError):
            await backend.list_directory("/")

    @pytest.mark.asyncio
    async def test_operations_fail_after_disconnect(self, backend) -> None:
        """Every I/O operation fails after disconnect."""
        await backend.disconnect()

        with pytest.raises(NotConnectedError):
            await backend.read_full("README.md")

    @pytest.mark.asyncio
    async def test_rejects_other_protocol(self) -> None:
        """Only local and file descriptors are accepted."""
        with pytest.raises(ProtocolNotSupportedError):
            await LocalStorageBackend().connect(ConnectionDescriptor(protocol="s3"))

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path) -> None:
        """A root that does not exist fails to connect."""
        with pytest.raises(StorageNotFoundError):
            await LocalStorageBackend().connect(
                ConnectionDescriptor(protocol="file", root_path=str(tmp_path / "nope"))
            )

    @pytest.mark.asyncio
    async def test_file_size(self, backend) -> None:
        """File size comes from the filesystem."""
        assert await backend.get_file_size("data/big.bin") == 1024

    @pytest.mark.asyncio
    async def test_read_range(self, backend) -> None:
        """A range read returns exactly the requested bytes."""
        data = await backend.read_range("/data/big.bin", 10, 5)
        assert data == bytes([10, 11, 12, 13, 14])

    @pytest.mark.asyncio
    async def test_read_range_past_eof_is_short(self, backend) -> None:
        """A range past end of file returns the short remainder."""
        assert await backend.read_range("data/big.bin", 1020, 100) == bytes([252, 253, 254, 255])
        assert await backend.read_range("data/big.bin", 5000, 10) == b""

    @pytest.mark.asyncio
    async def test_read_full(self, backend) -> None:
        """read_full returns the whole file."""
        assert await backend.read_full("README.md") == b"# Readme\n"

    @pytest.mark.asyncio
    async def test_missing_file(self, backend) -> None:
        """Missing files raise StorageNotFoundError."""
        with pytest.raises(StorageNotFoundError):
            await backend.get_file_size("missing.txt")
        with pytest.raises(StorageNotFoundError):
            await backend.read_range("missing.txt", 0, 1)

    @pytest.mark.asyncio
    async def test_path_escape_refused(self, backend) -> None:
        """Paths may not leave the root."""
        with pytest.raises(InvalidConfigError):
            await backend.read_full("../../etc/passwd")

    @pytest.mark.asyncio
    async def test_list_root(self, backend) -> None:
        """The root lists files and directories."""
        listing = await backend.list_directory("/", ListOptions(sort_by="name"))

        assert [f.filename for f in listing.files] == ["README.md", "data"]
        assert listing.files[1].is_directory
        assert listing.files[0].mime == "text/markdown"

    @pytest.mark.asyncio
    async def test_list_subdirectory_paths(self, backend) -> None:
        """Entries of a subdirectory carry root-relative filenames."""
        listing = await backend.list_directory("data")

        assert sorted(f.filename for f in listing.files) == ["data/big.bin", "data/train.csv"]

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, backend) -> None:
        """Listing a missing directory raises StorageNotFoundError."""
        with pytest.raises(StorageNotFoundError):
            await backend.list_directory("nope")

    @pytest.mark.asyncio
    async def test_protocol_url(self, backend, root) -> None:
        """Protocol URLs are file:// URLs of the resolved path."""
        assert backend.build_protocol_url("README.md") == f"file://{root.resolve() / 'README.md'}"
