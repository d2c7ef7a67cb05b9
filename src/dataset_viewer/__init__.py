"""Dataset Viewer Core - browse and preview files in remote storage and archives."""

from dataset_viewer.archive import ArchiveFormat, ArchiveInfo, ArchiveService, FilePreview
from dataset_viewer.config import Config
from dataset_viewer.notifications import MessageType, NotificationHub
from dataset_viewer.observability import (
    LogLevel,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from dataset_viewer.plugins import available_protocols, create_storage_backend
from dataset_viewer.protocols import ConnectionDescriptor, StorageBackend
from dataset_viewer.sessions import SessionRegistry
from dataset_viewer.state import AppState

__version__ = "0.1.0"
__all__ = [
    # Core
    "AppState",
    "Config",
    "SessionRegistry",
    # Storage
    "ConnectionDescriptor",
    "StorageBackend",
    "available_protocols",
    "create_storage_backend",
    # Archives
    "ArchiveFormat",
    "ArchiveInfo",
    "ArchiveService",
    "FilePreview",
    # Notifications
    "MessageType",
    "NotificationHub",
    # Observability
    "LogLevel",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
