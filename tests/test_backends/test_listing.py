"""Tests for listing options applied to complete listings."""

from dataset_viewer.backends.storage.listing import apply_list_options
from dataset_viewer.protocols import FileInfo, ListOptions


def make_files() -> list[FileInfo]:
    return [
        FileInfo(filename="b.csv", basename="b.csv", lastmod="2024-02-01", size=20, file_type="file"),
        FileInfo(filename="a.csv", basename="a.csv", lastmod="2024-03-01", size=30, file_type="file"),
        FileInfo(filename="c.json", basename="c.json", lastmod="2024-01-01", size=10, file_type="file"),
    ]


class TestApplyListOptions:
    """Tests for apply_list_options."""

    def test_no_options(self) -> None:
        """Without options everything is returned in the given order."""
        listing = apply_list_options("/", make_files(), None)

        assert [f.filename for f in listing.files] == ["b.csv", "a.csv", "c.json"]
        assert listing.total_count == 3
        assert listing.has_more is False

    def test_sort_by_size_desc(self) -> None:
        """Sorting by size descending."""
        listing = apply_list_options("/", make_files(), ListOptions(sort_by="size", sort_order="desc"))

        assert [f.size for f in listing.files] == [30, 20, 10]

    def test_sort_by_modified(self) -> None:
        """Sorting by modification time."""
        listing = apply_list_options("/", make_files(), ListOptions(sort_by="modified"))

        assert [f.filename for f in listing.files] == ["c.json", "b.csv", "a.csv"]

    def test_prefix_filter(self) -> None:
        """A prefix filters on the basename."""
        listing = apply_list_options("/", make_files(), ListOptions(prefix="c"))

        assert [f.filename for f in listing.files] == ["c.json"]
        assert listing.total_count == 1

    def test_pagination(self) -> None:
        """The marker is the offset of the next page."""
        options = ListOptions(page_size=2, sort_by="name")

        first = apply_list_options("/", make_files(), options)
        second = apply_list_options(
            "/", make_files(), ListOptions(page_size=2, sort_by="name", marker=first.next_marker)
        )

        assert [f.filename for f in first.files] == ["a.csv", "b.csv"]
        assert first.has_more is True
        assert first.next_marker == "2"
        assert [f.filename for f in second.files] == ["c.json"]
        assert second.has_more is False
        assert second.next_marker is None

    def test_invalid_marker_starts_over(self) -> None:
        """A marker that is not an offset restarts from the first page."""
        listing = apply_list_options("/", make_files(), ListOptions(page_size=1, marker="abc"))

        assert listing.files[0].filename == "b.csv"

    def test_to_dict_sizes_are_strings(self) -> None:
        """Sizes and counts serialize as strings."""
        data = apply_list_options("data", make_files(), None).to_dict()

        assert data["files"][0]["size"] == "20"
        assert data["total_count"] == "3"
        assert data["path"] == "data"
