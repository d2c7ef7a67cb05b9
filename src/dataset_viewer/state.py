"""Application state shared by the HTTP handlers."""

import time
from pathlib import Path
from typing import Any

from dataset_viewer.archive import ArchiveLimits, ArchiveService
from dataset_viewer.config import Config
from dataset_viewer.notifications import NotificationHub
from dataset_viewer.observability import configure_logging, get_logger
from dataset_viewer.sessions import SessionRegistry
from dataset_viewer.sessions.registry import BackendFactory

logger = get_logger(__name__)


class AppState:
    """Owns the session registry, archive service and notification hub.

    Example:
        state = AppState.from_config("config.yaml")
        state.serve()
    """

    def __init__(
        self,
        config: Config | None = None,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        """Initialize application state.

        Args:
            config: Configuration (defaults apply when omitted)
            backend_factory: Override for building storage backends
        """
        self.config = config or Config()
        self.registry = SessionRegistry(
            backend_factory=backend_factory,
            allow_local_files=self.config.storage.allow_local_files,
            session_timeout_minutes=self.config.storage.session_timeout_minutes,
        )
        self.notifications = NotificationHub()
        self.archives = ArchiveService(
            self.registry,
            limits=ArchiveLimits.from_config(self.config.archive),
            notifications=self.notifications,
        )
        self.started_at = time.monotonic()

    @classmethod
    def from_config(cls, path: str | Path) -> "AppState":
        """Create state from a configuration file, with environment overrides."""
        config = Config.from_env(Config.from_file(path))
        return cls(config)

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.started_at)

    async def shutdown(self) -> None:
        """Disconnect every open session."""
        count = len(self.registry)
        await self.registry.disconnect_all()
        logger.info("Shut down", context={"sessions_closed": count})

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from dataset_viewer.server.app import create_app

        configure_logging(self.config.logging.level, self.config.logging.format)
        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )

    async def __aenter__(self) -> "AppState":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()
