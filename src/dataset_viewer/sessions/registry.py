"""Session registry: owns connected storage backends keyed by session id."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from dataset_viewer.exceptions import (
    ProtocolNotSupportedError,
    SessionNotFoundError,
    StorageError,
)
from dataset_viewer.observability import emit_counter, get_logger
from dataset_viewer.plugins import create_storage_backend
from dataset_viewer.protocols import ConnectionDescriptor, StorageBackend

logger = get_logger(__name__)

LOCAL_PROTOCOLS = ("local", "file")

BackendFactory = Callable[[str], StorageBackend]


@dataclass
class Session:
    """A connected backend bound to a session id."""

    id: str
    backend: StorageBackend
    protocol: str
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    last_used: float = field(default_factory=time.monotonic)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "protocol": self.protocol,
            "created_at": self.created_at,
        }


class SessionRegistry:
    """Maps session ids to connected storage backends.

    The registry is the sole owner of every backend it holds. Callers borrow
    a backend for the duration of one operation via ``get_backend``.

    The lock guards the map only; it is never held across backend I/O, so a
    slow connect or disconnect does not stall other sessions.
    """

    def __init__(
        self,
        backend_factory: BackendFactory | None = None,
        allow_local_files: bool = True,
        session_timeout_minutes: int | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            backend_factory: Builds an unconnected backend for a protocol
                name. Defaults to entry-point/built-in discovery.
            allow_local_files: Whether ``local``/``file`` sessions may be opened
            session_timeout_minutes: Idle time after which
                ``cleanup_expired`` closes a session (None disables)
        """
        self._factory = backend_factory or create_storage_backend
        self.allow_local_files = allow_local_files
        self.session_timeout_minutes = session_timeout_minutes
        self._sessions: dict[str, Session] = {}
        self._active_session: str | None = None
        self._lock = asyncio.Lock()

    async def create_session(self, descriptor: ConnectionDescriptor) -> str:
        """Connect a backend for the descriptor and store it under a new id.

        On failure nothing is stored and the backend's error propagates.

        Returns:
            The new session id
        """
        protocol = descriptor.protocol
        if protocol in LOCAL_PROTOCOLS and not self.allow_local_files:
            raise ProtocolNotSupportedError(protocol)

        backend = self._factory(protocol)
        await backend.connect(descriptor)

        session_id = str(uuid.uuid4())
        async with self._lock:
            self._sessions[session_id] = Session(
                id=session_id,
                backend=backend,
                protocol=protocol,
            )
            self._active_session = session_id

        logger.info(
            "Session created",
            context={"session_id": session_id, "protocol": protocol},
        )
        emit_counter("session.created", labels={"protocol": protocol})
        return session_id

    async def disconnect(self, session_id: str) -> None:
        """Remove a session and disconnect its backend.

        Unknown ids are ignored, so repeated calls are harmless.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if self._active_session == session_id:
                self._active_session = None

        if session is None:
            return

        try:
            await session.backend.disconnect()
        finally:
            logger.info(
                "Session closed",
                context={"session_id": session_id, "protocol": session.protocol},
            )
            emit_counter("session.closed", labels={"protocol": session.protocol})

    async def disconnect_all(self) -> None:
        """Disconnect every session. Backend errors are logged, not raised."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._active_session = None

        for session in sessions:
            try:
                await session.backend.disconnect()
            except StorageError as e:
                logger.warning(
                    "Backend disconnect failed",
                    context={"session_id": session.id},
                    error=e,
                )
            emit_counter("session.closed", labels={"protocol": session.protocol})

    async def cleanup_expired(self) -> list[str]:
        """Close sessions idle for longer than the configured timeout.

        Returns:
            Ids of the sessions that were closed
        """
        if not self.session_timeout_minutes:
            return []

        cutoff = time.monotonic() - self.session_timeout_minutes * 60
        async with self._lock:
            expired = [s.id for s in self._sessions.values() if s.last_used < cutoff]

        for session_id in expired:
            try:
                await self.disconnect(session_id)
            except StorageError as e:
                logger.warning(
                    "Expired session disconnect failed",
                    context={"session_id": session_id},
                    error=e,
                )
        return expired

    async def exists(self, session_id: str) -> bool:
        async with self._lock:
            return session_id in self._sessions

    async def list_sessions(self) -> list[str]:
        async with self._lock:
            return list(self._sessions)

    async def get_session(self, session_id: str) -> Session:
        """Get session info.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    async def get_backend(self, session_id: str) -> StorageBackend:
        """Borrow the backend of a session for one operation.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.get_session(session_id)
        session.last_used = time.monotonic()
        return session.backend

    async def get_active_session_id(self) -> str | None:
        """Id of the most recently created session still open."""
        async with self._lock:
            return self._active_session

    def __len__(self) -> int:
        return len(self._sessions)
