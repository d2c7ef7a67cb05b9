"""Tests for path utilities."""

import pytest

from dataset_viewer.utils import basename, get_file_extension, guess_mime_type, normalize_path


class TestPaths:
    """Tests for path helpers."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/", "/"),
            ("", ""),
            ("/data//train/", "data/train"),
            ("a.zip", "a.zip"),
        ],
    )
    def test_normalize_path(self, path: str, expected: str) -> None:
        assert normalize_path(path) == expected

    def test_basename(self) -> None:
        """Trailing slashes are ignored."""
        assert basename("data/images/") == "images"
        assert basename("a.txt") == "a.txt"

    def test_extension(self) -> None:
        assert get_file_extension("archive.TAR.GZ") == "gz"
        assert get_file_extension("README") is None

    def test_mime_types(self) -> None:
        """Dataset formats get explicit types; unknown files are binary."""
        assert guess_mime_type("train.parquet") == "application/x-parquet"
        assert guess_mime_type("notes.md") == "text/markdown"
        assert guess_mime_type("blob.unknownext") == "application/octet-stream"
