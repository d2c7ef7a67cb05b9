"""HTTP and WebSocket route handlers.

Every JSON endpoint answers with ``{"status": "success", "data": ...}`` or
``{"status": "error", "error": TYPE, "message": ...}``.
"""

import asyncio
import functools
import json
import platform
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from dataset_viewer.exceptions import (
    AuthenticationFailedError,
    BadRequestError,
    ConfigError,
    DatasetViewerError,
    NetworkError,
    NotFoundError,
    SessionNotFoundError,
    StorageError,
    StorageNotFoundError,
)
from dataset_viewer.observability import get_logger
from dataset_viewer.protocols import ConnectionDescriptor, ListOptions
from dataset_viewer.utils.paths import basename, guess_mime_type

if TYPE_CHECKING:
    from dataset_viewer.state import AppState

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


class ConnectRequest(BaseModel):
    config: ConnectionDescriptor


class ListRequest(BaseModel):
    path: str = ""
    options: dict[str, Any] | None = None


class FileContentRequest(BaseModel):
    path: str
    start: int | None = None
    length: int | None = None


class FileInfoRequest(BaseModel):
    path: str


class ArchiveInfoRequest(BaseModel):
    file_path: str
    max_entries: int | None = None


class ArchiveFileRequest(BaseModel):
    archive_path: str
    file_path: str
    max_size: int | None = None
    offset: int | None = None


def success(data: Any) -> JSONResponse:
    return JSONResponse({"status": "success", "data": data})


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        {"status": "error", "error": error, "message": message},
        status_code=status_code,
    )


def classify_error(e: DatasetViewerError) -> tuple[int, str]:
    """HTTP status and error type for an exception.

    More specific classes are checked first.
    """
    if isinstance(e, AuthenticationFailedError):
        return 401, "AUTHENTICATION_ERROR"
    if isinstance(e, NetworkError):
        return 502, "NETWORK_ERROR"
    if isinstance(e, (NotFoundError, StorageNotFoundError)):
        return 404, "NOT_FOUND"
    if isinstance(e, StorageError):
        return 400, "STORAGE_ERROR"
    if isinstance(e, BadRequestError):
        return 400, "ARCHIVE_ERROR"
    if isinstance(e, ConfigError):
        return 500, "CONFIG_ERROR"
    return 500, "INTERNAL_ERROR"


def api_handler(handler: Handler) -> Handler:
    """Render package exceptions and bad request bodies as error envelopes."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            return await handler(request)
        except ValidationError as e:
            return error_response(400, "VALIDATION_ERROR", str(e))
        except json.JSONDecodeError:
            return error_response(400, "VALIDATION_ERROR", "Invalid JSON body")
        except DatasetViewerError as e:
            status_code, error_type = classify_error(e)
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed", error=e)
            return error_response(status_code, error_type, str(e))

    return wrapper


async def parse_body(request: Request, model: type[BaseModel]) -> Any:
    body = await request.json()
    return model.model_validate(body)


def create_routes(state: "AppState") -> list[Route | WebSocketRoute]:
    """Create HTTP and WebSocket routes.

    Args:
        state: Application state holding the registry, archive service
            and notification hub

    Returns:
        List of Starlette routes
    """
    from dataset_viewer import __version__

    registry = state.registry
    hub = state.notifications

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse({"status": "ok", "timestamp": time.time()})

    async def server_status(request: Request) -> Response:
        return success({
            "version": __version__,
            "uptime_seconds": state.uptime_seconds,
            "active_connections": hub.connection_count,
            "active_sessions": len(registry),
        })

    async def version(request: Request) -> Response:
        return success({
            "name": "dataset-viewer-core",
            "version": __version__,
            "description": "Browse and preview files in remote storage and archives",
            "python_version": platform.python_version(),
        })

    @api_handler
    async def connect(request: Request) -> Response:
        body = await parse_body(request, ConnectRequest)
        descriptor = body.config
        session_id = await registry.create_session(descriptor)
        await hub.send_connection_status(session_id, True, descriptor.protocol)
        return success({
            "session_id": session_id,
            "protocol": descriptor.protocol,
            "connected": True,
        })

    @api_handler
    async def disconnect(request: Request) -> Response:
        session_id = request.path_params["session_id"]
        try:
            protocol = (await registry.get_session(session_id)).protocol
        except SessionNotFoundError:
            protocol = "unknown"
        await registry.disconnect(session_id)
        await hub.send_connection_status(session_id, False, protocol)
        return success("Disconnected")

    @api_handler
    async def list_sessions(request: Request) -> Response:
        return success(await registry.list_sessions())

    @api_handler
    async def get_session(request: Request) -> Response:
        session = await registry.get_session(request.path_params["session_id"])
        info = session.to_dict()
        info["connected"] = await session.backend.is_connected()
        return success(info)

    @api_handler
    async def list_directory(request: Request) -> Response:
        body = await parse_body(request, ListRequest)
        backend = await registry.get_backend(request.path_params["session_id"])
        listing = await backend.list_directory(body.path, ListOptions.from_dict(body.options))
        return success(listing.to_dict())

    @api_handler
    async def file_content(request: Request) -> Response:
        body = await parse_body(request, FileContentRequest)
        backend = await registry.get_backend(request.path_params["session_id"])

        if body.start is None and body.length is None:
            content = await backend.read_full(body.path)
        else:
            start = body.start or 0
            length = body.length
            if start < 0 or (length is not None and length < 0):
                raise BadRequestError("start and length must be non-negative")
            if length is None:
                length = max(await backend.get_file_size(body.path) - start, 0)
            content = await backend.read_range(body.path, start, length)

        return success({
            "content": list(content),
            "size": len(content),
            "mime_type": guess_mime_type(body.path),
            "encoding": None,
        })

    @api_handler
    async def file_info(request: Request) -> Response:
        body = await parse_body(request, FileInfoRequest)
        backend = await registry.get_backend(request.path_params["session_id"])
        size = await backend.get_file_size(body.path)
        return success({
            "filename": body.path,
            "basename": basename(body.path),
            "size": str(size),
            "type": "file",
            "mime": guess_mime_type(body.path),
            "url": backend.build_protocol_url(body.path),
        })

    @api_handler
    async def archive_info(request: Request) -> Response:
        body = await parse_body(request, ArchiveInfoRequest)
        info = await state.archives.get_archive_info(
            request.path_params["session_id"],
            body.file_path,
            max_entries=body.max_entries,
        )
        return success(info.to_dict())

    @api_handler
    async def archive_file(request: Request) -> Response:
        body = await parse_body(request, ArchiveFileRequest)
        preview = await state.archives.get_archive_file(
            request.path_params["session_id"],
            body.archive_path,
            body.file_path,
            max_size=body.max_size,
            offset=body.offset,
        )
        return success(preview.to_dict())

    async def notifications(websocket: WebSocket) -> None:
        """Stream notification envelopes; accept Subscribe/Unsubscribe/Ping."""
        await websocket.accept()
        connection = hub.register()

        async def pump() -> None:
            while True:
                envelope = await connection.queue.get()
                await websocket.send_json(envelope)

        sender = asyncio.create_task(pump())
        try:
            while True:
                text = await websocket.receive_text()
                hub.handle_client_message(connection.id, text)
        except WebSocketDisconnect:
            logger.debug("WebSocket closed", context={"connection_id": connection.id})
        finally:
            sender.cancel()
            hub.unregister(connection.id)

    return [
        # Health
        Route("/health", health, methods=["GET"]),
        Route("/api/health", health, methods=["GET"]),
        Route("/api/status", server_status, methods=["GET"]),
        Route("/api/version", version, methods=["GET"]),
        # Sessions
        Route("/api/storage/connect", connect, methods=["POST"]),
        Route("/api/storage/disconnect/{session_id}", disconnect, methods=["DELETE"]),
        Route("/api/storage/sessions", list_sessions, methods=["GET"]),
        Route("/api/storage/sessions/{session_id}", get_session, methods=["GET"]),
        # Files
        Route("/api/storage/{session_id}/list", list_directory, methods=["POST"]),
        Route("/api/storage/{session_id}/file/content", file_content, methods=["POST"]),
        Route("/api/storage/{session_id}/file/info", file_info, methods=["POST"]),
        # Archives
        Route("/api/storage/{session_id}/archive/info", archive_info, methods=["POST"]),
        Route("/api/storage/{session_id}/archive/file", archive_file, methods=["POST"]),
        # Notifications
        WebSocketRoute("/ws", notifications),
    ]
