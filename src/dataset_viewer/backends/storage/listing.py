"""Sorting and offset pagination for backends that list everything at once."""

from dataset_viewer.protocols.storage import DirectoryListing, FileInfo, ListOptions

_SORT_KEYS = {
    "name": lambda f: f.filename,
    "size": lambda f: f.size,
    "modified": lambda f: f.lastmod,
}


def apply_list_options(
    path: str,
    files: list[FileInfo],
    options: ListOptions | None,
) -> DirectoryListing:
    """Filter, sort and paginate a complete listing.

    The pagination marker is the integer offset of the next page.
    """
    if options is None:
        return DirectoryListing(path=path, files=files, total_count=len(files))

    if options.prefix:
        files = [f for f in files if f.basename.startswith(options.prefix)]

    key = _SORT_KEYS.get(options.sort_by or "")
    if key is not None:
        files = sorted(files, key=key, reverse=options.sort_order == "desc")

    total = len(files)
    if not options.page_size:
        return DirectoryListing(path=path, files=files, total_count=total)

    try:
        start = int(options.marker) if options.marker else 0
    except ValueError:
        start = 0
    end = start + options.page_size
    has_more = end < total

    return DirectoryListing(
        path=path,
        files=files[start:end],
        has_more=has_more,
        next_marker=str(end) if has_more else None,
        total_count=total,
    )
