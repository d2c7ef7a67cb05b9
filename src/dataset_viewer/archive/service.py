"""Archive facade: session lookup, format dispatch, logging and metrics."""

from dataset_viewer.archive.tar import tar_archive_info, tar_extract_entry
from dataset_viewer.archive.types import ArchiveFormat, ArchiveInfo, ArchiveLimits, FilePreview
from dataset_viewer.archive.zip_extractor import extract_entry
from dataset_viewer.archive.zip_parser import locate_archive_inventory
from dataset_viewer.exceptions import (
    BadRequestError,
    DatasetViewerError,
    SessionNotFoundError,
    UnsupportedFormatError,
)
from dataset_viewer.notifications import MessageType, NotificationHub
from dataset_viewer.observability import (
    RequestContext,
    Timer,
    emit_timer,
    get_logger,
    request_id_var,
)
from dataset_viewer.protocols import ProgressInfo
from dataset_viewer.sessions import SessionRegistry

logger = get_logger(__name__)


def _check_non_negative(**values: int | None) -> None:
    for name, value in values.items():
        if value is not None and value < 0:
            raise BadRequestError(f"{name} must be non-negative, got {value}")


def detect_format(path: str) -> ArchiveFormat:
    """Format of an archive path, rejecting anything not yet supported.

    Raises:
        UnsupportedFormatError: For unknown or unsupported extensions
    """
    fmt = ArchiveFormat.from_path(path)
    if fmt == ArchiveFormat.UNKNOWN:
        raise UnsupportedFormatError(f"Unsupported archive format: {path}")
    if not fmt.is_supported:
        raise UnsupportedFormatError(f"{fmt.value} archives are not supported yet")
    return fmt


class ArchiveService:
    """Reads archive inventories and entries through session backends.

    ZIP archives stream through bounded range reads. TAR and TAR.GZ are
    buffered whole.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        limits: ArchiveLimits | None = None,
        notifications: NotificationHub | None = None,
    ) -> None:
        """Initialize the archive service.

        Args:
            registry: Session registry that owns the backends
            limits: Hard parsing limits (defaults apply when omitted)
            notifications: Hub receiving extraction progress, if any
        """
        self.registry = registry
        self.limits = limits or ArchiveLimits()
        self.notifications = notifications

    async def _require_session(self, session_id: str) -> None:
        if not await self.registry.exists(session_id):
            raise SessionNotFoundError(f"Session not found: {session_id}")

    async def get_archive_info(
        self,
        session_id: str,
        file_path: str,
        max_entries: int | None = None,
    ) -> ArchiveInfo:
        """List the entries of an archive.

        Args:
            session_id: Session whose backend holds the archive
            file_path: Archive path within the backend
            max_entries: Cap on returned entries

        Returns:
            ArchiveInfo; ``has_more`` is set when entries were left out
        """
        await self._require_session(session_id)
        fmt = detect_format(file_path)
        _check_non_negative(max_entries=max_entries)
        backend = await self.registry.get_backend(session_id)

        async with RequestContext(
            request_id=request_id_var.get(),
            session_id=session_id,
            archive_path=file_path,
        ):
            with Timer() as timer:
                try:
                    if fmt == ArchiveFormat.ZIP:
                        info = await locate_archive_inventory(
                            backend, file_path, max_entries, self.limits
                        )
                    else:
                        info = await tar_archive_info(
                            backend, file_path, fmt, max_entries, self.limits
                        )
                except DatasetViewerError as e:
                    logger.warning(
                        "Archive inventory failed",
                        context={"format": fmt.value},
                        error=e,
                    )
                    raise

            logger.info(
                "Archive inventory read",
                context={
                    "format": fmt.value,
                    "entries": len(info.entries),
                    "total_entries": info.total_entries,
                    "has_more": info.has_more,
                },
                duration_ms=timer.duration_ms,
            )
            emit_timer("archive.info", timer.duration_ms, labels={"format": fmt.value})
        return info

    async def get_archive_file(
        self,
        session_id: str,
        archive_path: str,
        file_path: str,
        max_size: int | None = None,
        offset: int | None = None,
    ) -> FilePreview:
        """Extract one entry from an archive.

        Args:
            session_id: Session whose backend holds the archive
            archive_path: Archive path within the backend
            file_path: Exact entry name inside the archive
            max_size: Cap on returned bytes
            offset: Start position within the entry's uncompressed content

        Returns:
            FilePreview of ``[offset, offset + preview_size)``
        """
        await self._require_session(session_id)
        fmt = detect_format(archive_path)
        _check_non_negative(max_size=max_size, offset=offset)
        backend = await self.registry.get_backend(session_id)

        def on_progress(progress: ProgressInfo) -> None:
            if self.notifications is not None:
                self.notifications.publish(
                    MessageType.PROGRESS,
                    {
                        "session_id": session_id,
                        "file_path": f"{archive_path}/{file_path}",
                        "progress": progress.to_dict(),
                    },
                    session_id=session_id,
                )

        async with RequestContext(
            request_id=request_id_var.get(),
            session_id=session_id,
            archive_path=archive_path,
        ):
            with Timer() as timer:
                try:
                    if fmt == ArchiveFormat.ZIP:
                        preview = await extract_entry(
                            backend,
                            archive_path,
                            file_path,
                            max_size=max_size,
                            offset=offset,
                            progress=on_progress,
                            limits=self.limits,
                        )
                    else:
                        preview = await tar_extract_entry(
                            backend,
                            archive_path,
                            fmt,
                            file_path,
                            max_size=max_size,
                            offset=offset,
                            limits=self.limits,
                        )
                except DatasetViewerError as e:
                    logger.warning(
                        "Archive extraction failed",
                        context={"format": fmt.value, "entry": file_path},
                        error=e,
                    )
                    if self.notifications is not None:
                        await self.notifications.send_download_complete(
                            session_id, file_path, success=False, message=str(e)
                        )
                    raise

            logger.info(
                "Archive entry extracted",
                context={
                    "format": fmt.value,
                    "entry": file_path,
                    "preview_size": preview.preview_size,
                    "total_size": preview.total_size,
                    "is_truncated": preview.is_truncated,
                },
                duration_ms=timer.duration_ms,
            )
            emit_timer("archive.extract", timer.duration_ms, labels={"format": fmt.value})

        if self.notifications is not None:
            await self.notifications.send_download_complete(session_id, file_path, success=True)
        return preview
