"""WebDAV storage backend."""

import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import quote, unquote, urlsplit

import httpx

from dataset_viewer.backends.storage.http import (
    DEFAULT_TIMEOUT,
    check_response,
    send,
    slice_range_response,
)
from dataset_viewer.backends.storage.listing import apply_list_options
from dataset_viewer.exceptions import (
    AuthenticationFailedError,
    ConnectionFailedError,
    InvalidConfigError,
    NotConnectedError,
    ProtocolNotSupportedError,
    RequestFailedError,
    StorageError,
)
from dataset_viewer.protocols.storage import (
    ConnectionDescriptor,
    DirectoryListing,
    FileInfo,
    ListOptions,
)
from dataset_viewer.utils.paths import basename, guess_mime_type

DAV = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:resourcetype/><d:getcontentlength/><d:getlastmodified/>"
    "<d:getcontenttype/><d:getetag/>"
    "</d:prop></d:propfind>"
)


def _lastmod_to_iso(value: str | None) -> str:
    if not value:
        return ""
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        return value


def parse_multistatus(body: bytes, base_path: str) -> list[FileInfo]:
    """Parse a PROPFIND ``multistatus`` document into listing entries.

    ``filename`` is the entry path relative to ``base_path`` (the path
    component of the server root URL).

    Raises:
        RequestFailedError: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise RequestFailedError(f"Malformed PROPFIND response: {e}") from e

    base_path = base_path.rstrip("/")
    entries = []
    for response in root.iter(f"{DAV}response"):
        href = response.findtext(f"{DAV}href") or ""
        path = unquote(urlsplit(href).path)
        if base_path and path.startswith(base_path):
            path = path[len(base_path):]
        relative = path.strip("/")

        prop = response.find(f"{DAV}propstat/{DAV}prop")
        if prop is None:
            continue
        resourcetype = prop.find(f"{DAV}resourcetype")
        is_dir = resourcetype is not None and resourcetype.find(f"{DAV}collection") is not None
        length = prop.findtext(f"{DAV}getcontentlength") or "0"
        etag = prop.findtext(f"{DAV}getetag")

        entries.append(FileInfo(
            filename=relative,
            basename=basename(relative),
            lastmod=_lastmod_to_iso(prop.findtext(f"{DAV}getlastmodified")),
            size=0 if is_dir else int(length) if length.isdigit() else 0,
            file_type="directory" if is_dir else "file",
            mime=None if is_dir else (
                prop.findtext(f"{DAV}getcontenttype") or guess_mime_type(relative)
            ),
            etag=etag.strip('"') if etag else None,
        ))
    return entries


class WebDAVStorageBackend:
    """WebDAV storage backend using httpx.

    Directory listing uses ``PROPFIND`` with ``Depth: 1``; reads use ranged
    ``GET`` requests.
    """

    protocol = "webdav"
    aliases = ("webdav", "webdavs")

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize WebDAV backend.

        Args:
            transport: Custom httpx transport (tests pass ``httpx.MockTransport``)
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.base_url = ""

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise NotConnectedError()
        return self._client

    def _url(self, path: str) -> str:
        clean = path.strip("/")
        if not clean:
            return self.base_url + "/"
        return f"{self.base_url}/{quote(clean)}"

    async def _propfind(self, path: str, depth: str) -> list[FileInfo]:
        client = self._require_client()
        what = f"PROPFIND {path}"
        response = await send(
            client,
            "PROPFIND",
            self._url(path),
            what,
            headers={"Depth": depth, "Content-Type": "application/xml"},
            content=PROPFIND_BODY,
        )
        check_response(response, what)
        return parse_multistatus(response.content, urlsplit(self.base_url).path)

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        if descriptor.protocol not in self.aliases:
            raise ProtocolNotSupportedError(descriptor.protocol)
        if not descriptor.url:
            raise InvalidConfigError("WebDAV URL is required")

        auth = None
        if descriptor.username:
            auth = httpx.BasicAuth(descriptor.username, descriptor.password or "")

        self.base_url = descriptor.url.rstrip("/")
        self._client = httpx.AsyncClient(
            auth=auth,
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
            follow_redirects=True,
        )

        try:
            await self._propfind("/", depth="0")
        except AuthenticationFailedError:
            await self.disconnect()
            raise
        except StorageError as e:
            await self.disconnect()
            raise ConnectionFailedError(f"Connect to {descriptor.url}: {e}") from e

    async def is_connected(self) -> bool:
        return self._client is not None

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_file_size(self, path: str) -> int:
        client = self._require_client()
        what = f"HEAD {path}"
        response = check_response(await send(client, "HEAD", self._url(path), what), what)
        length = response.headers.get("content-length")
        if length is not None and length.isdigit():
            return int(length)

        # Some servers omit Content-Length on HEAD; ask for the property
        entries = await self._propfind(path, depth="0")
        if not entries:
            raise RequestFailedError(f"{what}: size unavailable")
        return entries[0].size

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        client = self._require_client()
        if length <= 0:
            return b""
        what = f"GET {path} [{offset}+{length}]"
        response = await send(
            client,
            "GET",
            self._url(path),
            what,
            headers={"Range": f"bytes={offset}-{offset + length - 1}"},
        )
        return slice_range_response(response, offset, length, what)

    async def read_full(self, path: str) -> bytes:
        client = self._require_client()
        what = f"GET {path}"
        response = check_response(await send(client, "GET", self._url(path), what), what)
        return response.content

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        entries = await self._propfind(path, depth="1")
        own = path.strip("/")
        files = [e for e in entries if e.filename != own]
        return apply_list_options(path, files, options)

    def build_protocol_url(self, path: str) -> str:
        clean = path.lstrip("/")
        if not clean:
            return self.base_url
        return f"{self.base_url}/{clean}"
