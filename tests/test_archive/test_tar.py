"""Tests for buffered TAR and TAR.GZ support."""

import pytest

from dataset_viewer.archive.tar import (
    extract_tar_entry,
    read_tar_inventory,
    tar_archive_info,
    tar_extract_entry,
)
from dataset_viewer.archive.types import ArchiveFormat, ArchiveLimits
from dataset_viewer.exceptions import (
    ArchiveTooLargeError,
    BackendIOError,
    EntryNotFoundError,
    InvalidArchiveError,
)

FILES = {
    "data/train.csv": b"id,label\n" + b"1,cat\n" * 50,
    "data/test.csv": b"id,label\n2,dog\n",
    "README.md": b"# Dataset\n",
}


class TestReadTarInventory:
    """Tests for listing TAR members."""

    def test_lists_members_in_order(self, make_tar) -> None:
        """Members are listed in container order."""
        info = read_tar_inventory(make_tar(FILES), ArchiveFormat.TAR, 100)

        assert [e.path for e in info.entries] == list(FILES)
        assert info.entries[0].name == "train.csv"
        assert info.total_entries == 3
        assert info.has_more is False
        assert info.format == ArchiveFormat.TAR

    def test_sizes_and_times(self, make_tar) -> None:
        """Sizes are summed and times rendered as RFC 3339."""
        info = read_tar_inventory(make_tar(FILES), ArchiveFormat.TAR, 100)

        total = sum(len(v) for v in FILES.values())
        assert info.total_uncompressed_size == total
        assert info.total_compressed_size == total
        assert info.entries[0].modified == "2023-11-14T22:13:20+00:00"

    def test_cap_counts_all_members(self, make_tar) -> None:
        """The cap limits listed entries while every member is counted."""
        info = read_tar_inventory(make_tar(FILES), ArchiveFormat.TAR, 1)

        assert len(info.entries) == 1
        assert info.total_entries == 3
        assert info.has_more is True

    def test_gzip_compressed_size(self, make_tar) -> None:
        """TAR.GZ reports the archive length as its compressed size."""
        data = make_tar(FILES, compression="gz")

        info = read_tar_inventory(data, ArchiveFormat.TAR_GZ, 100)

        assert info.total_entries == 3
        assert info.total_compressed_size == len(data)
        assert info.format == ArchiveFormat.TAR_GZ

    def test_corrupt_archive(self) -> None:
        """Garbage is reported as an invalid archive."""
        with pytest.raises(InvalidArchiveError):
            read_tar_inventory(b"this is not a tar archive", ArchiveFormat.TAR, 10)

    def test_corrupt_gzip(self) -> None:
        """A broken gzip stream is reported as an invalid archive."""
        with pytest.raises(InvalidArchiveError):
            read_tar_inventory(b"\x1f\x8b" + b"\x00" * 40, ArchiveFormat.TAR_GZ, 10)


class TestExtractTarEntry:
    """Tests for reading one TAR member."""

    def test_extracts_whole_member(self, make_tar) -> None:
        """A member is returned whole without a cap."""
        preview = extract_tar_entry(make_tar(FILES), ArchiveFormat.TAR, "data/test.csv")

        assert preview.content == FILES["data/test.csv"]
        assert preview.is_truncated is False

    def test_max_size(self, make_tar) -> None:
        """A cap truncates the preview."""
        preview = extract_tar_entry(
            make_tar(FILES), ArchiveFormat.TAR, "data/train.csv", max_size=10
        )

        assert preview.content == FILES["data/train.csv"][:10]
        assert preview.total_size == len(FILES["data/train.csv"])
        assert preview.is_truncated is True

    def test_offset(self, make_tar) -> None:
        """An offset slices into the member."""
        preview = extract_tar_entry(
            make_tar(FILES, compression="gz"),
            ArchiveFormat.TAR_GZ,
            "data/train.csv",
            max_size=6,
            offset=9,
        )

        assert preview.content == b"1,cat\n"
        assert preview.offset == 9

    def test_missing_member(self, make_tar) -> None:
        """A path not in the archive is not found."""
        with pytest.raises(EntryNotFoundError):
            extract_tar_entry(make_tar(FILES), ArchiveFormat.TAR, "nope.txt")

    def test_member_over_ceiling(self, make_tar) -> None:
        """The preview ceiling applies to TAR members too."""
        with pytest.raises(ArchiveTooLargeError):
            extract_tar_entry(
                make_tar(FILES), ArchiveFormat.TAR, "data/train.csv", max_entry_size=10
            )


class TestTarBackendReads:
    """Tests for the backend-facing TAR wrappers."""

    @pytest.mark.asyncio
    async def test_archive_info(self, memory_backend, make_tar) -> None:
        """The archive is read whole and listed."""
        await memory_backend.put("set.tar", make_tar(FILES))

        info = await tar_archive_info(
            memory_backend, "set.tar", ArchiveFormat.TAR, limits=ArchiveLimits(default_max_entries=2)
        )

        assert len(info.entries) == 2
        assert info.has_more is True

    @pytest.mark.asyncio
    async def test_extract(self, memory_backend, make_tar) -> None:
        """A member is extracted from the buffered archive."""
        await memory_backend.put("set.tgz", make_tar(FILES, compression="gz"))

        preview = await tar_extract_entry(
            memory_backend, "set.tgz", ArchiveFormat.TAR_GZ, "README.md"
        )

        assert preview.content == b"# Dataset\n"

    @pytest.mark.asyncio
    async def test_missing_archive(self, memory_backend) -> None:
        """Backend failures surface as backend I/O errors."""
        with pytest.raises(BackendIOError):
            await tar_archive_info(memory_backend, "missing.tar", ArchiveFormat.TAR)
