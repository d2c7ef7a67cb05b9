"""Notification hub: fans progress and status messages out to WebSocket clients."""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from dataset_viewer.observability import get_logger
from dataset_viewer.protocols import ProgressInfo

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class MessageType(str, Enum):
    """Wire names of notification messages."""

    PROGRESS = "Progress"
    DOWNLOAD_COMPLETE = "DownloadComplete"
    CONNECTION_STATUS = "ConnectionStatus"
    ERROR = "Error"
    PING = "Ping"
    PONG = "Pong"
    SUBSCRIBE = "Subscribe"
    UNSUBSCRIBE = "Unsubscribe"


def make_envelope(message_type: MessageType, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap a message as ``{id, message: {type, payload}, timestamp}``."""
    message: dict[str, Any] = {"type": message_type.value}
    if payload is not None:
        message["payload"] = payload
    return {
        "id": str(uuid.uuid4()),
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@dataclass
class Connection:
    """A registered listener and its pending messages."""

    id: str
    queue: asyncio.Queue
    subscriptions: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def wants(self, session_id: str | None) -> bool:
        """Unsubscribed connections receive everything."""
        if session_id is None or not self.subscriptions:
            return True
        return session_id in self.subscriptions


class NotificationHub:
    """In-process pub/sub for notification envelopes.

    Each connection owns a bounded queue. Publishing never blocks: when a
    slow consumer's queue is full, the message is dropped for that consumer.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._connections: dict[str, Connection] = {}

    def register(self) -> Connection:
        connection = Connection(
            id=str(uuid.uuid4()),
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        self._connections[connection.id] = connection
        logger.debug("Notification listener registered", context={"connection_id": connection.id})
        return connection

    def unregister(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            logger.debug("Notification listener removed", context={"connection_id": connection_id})

    def subscribe(self, connection_id: str, session_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.subscriptions.add(session_id)

    def unsubscribe(self, connection_id: str, session_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.subscriptions.discard(session_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def publish(
        self,
        message_type: MessageType,
        payload: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> int:
        """Queue a message for every interested connection.

        Must be called from the event loop thread.

        Returns:
            Number of connections the message was queued for
        """
        envelope = make_envelope(message_type, payload)
        delivered = 0
        for connection in list(self._connections.values()):
            if not connection.wants(session_id):
                continue
            try:
                connection.queue.put_nowait(envelope)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Notification queue full, dropping message",
                    context={"connection_id": connection.id, "type": message_type.value},
                )
        return delivered

    async def broadcast(
        self,
        message_type: MessageType,
        payload: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> int:
        return self.publish(message_type, payload, session_id)

    async def send_progress(self, session_id: str, file_path: str, progress: ProgressInfo) -> None:
        self.publish(
            MessageType.PROGRESS,
            {"session_id": session_id, "file_path": file_path, "progress": progress.to_dict()},
            session_id=session_id,
        )

    async def send_download_complete(
        self,
        session_id: str,
        file_path: str,
        success: bool,
        message: str | None = None,
    ) -> None:
        self.publish(
            MessageType.DOWNLOAD_COMPLETE,
            {"session_id": session_id, "file_path": file_path, "success": success, "message": message},
            session_id=session_id,
        )

    async def send_connection_status(self, session_id: str, connected: bool, protocol: str) -> None:
        self.publish(
            MessageType.CONNECTION_STATUS,
            {"session_id": session_id, "connected": connected, "protocol": protocol},
            session_id=session_id,
        )

    async def send_error(
        self,
        error: str,
        session_id: str | None = None,
        details: str | None = None,
    ) -> None:
        self.publish(
            MessageType.ERROR,
            {"session_id": session_id, "error": error, "details": details},
            session_id=session_id,
        )

    def handle_client_message(self, connection_id: str, text: str) -> None:
        """Apply a message received from a client.

        ``Subscribe``/``Unsubscribe`` change the connection's filter; ``Ping``
        is answered with a ``Pong`` to that connection only.
        """
        try:
            data = json.loads(text)
            message_type = MessageType(data["type"])
            payload = data.get("payload") or {}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Ignoring malformed client message",
                context={"connection_id": connection_id},
                error=e,
            )
            return

        if message_type == MessageType.SUBSCRIBE and payload.get("session_id"):
            self.subscribe(connection_id, payload["session_id"])
        elif message_type == MessageType.UNSUBSCRIBE and payload.get("session_id"):
            self.unsubscribe(connection_id, payload["session_id"])
        elif message_type == MessageType.PING:
            connection = self._connections.get(connection_id)
            if connection is not None:
                try:
                    connection.queue.put_nowait(make_envelope(MessageType.PONG))
                except asyncio.QueueFull:
                    logger.debug("Queue full, Pong dropped", context={"connection_id": connection_id})
        else:
            logger.warning(
                "Unsupported client message type",
                context={"connection_id": connection_id, "type": message_type.value},
            )

    def cleanup_expired_connections(self, max_age_hours: float) -> int:
        """Drop connections older than ``max_age_hours``; returns how many."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
        expired = [c.id for c in self._connections.values() if c.created_at < cutoff]
        for connection_id in expired:
            self.unregister(connection_id)
        return len(expired)
