"""HuggingFace Hub storage backend."""

from typing import Any
from urllib.parse import quote

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

DEFAULT_ENDPOINT = "https://huggingface.co"
REPO_TYPES = ("dataset", "model", "space")

# URL prefix of the resolve endpoint for each repo type
_RESOLVE_PREFIX = {"dataset": "datasets/", "model": "", "space": "spaces/"}


class HuggingFaceStorageBackend:
    """Read-only access to files in HuggingFace Hub repositories.

    With ``extra_options["repo_id"]`` set, paths are relative to that
    repository. Without it, a path starts with ``owner/name`` and the rest
    is the path inside the repository.

    Connection options (``extra_options``):
        repo_id: Repository id, e.g. ``"squad"`` or ``"org/dataset"``
        repo_type: ``dataset`` (default), ``model`` or ``space``
        revision: Branch, tag or commit (default ``main``)

    The API token travels in ``password``.
    """

    protocol = "huggingface"
    aliases = ("huggingface",)

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.endpoint = DEFAULT_ENDPOINT
        self.repo_id: str | None = None
        self.repo_type = "dataset"
        self.revision = "main"

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise NotConnectedError()
        return self._client

    def _split(self, path: str) -> tuple[str, str]:
        """Split a storage path into ``(repo_id, path_in_repo)``."""
        clean = path.strip("/")
        if self.repo_id:
            return self.repo_id, clean
        parts = clean.split("/", 2)
        if len(parts) < 2 or not parts[1]:
            raise InvalidConfigError(
                f"Path must start with owner/name when no repo_id is configured: {path}"
            )
        return f"{parts[0]}/{parts[1]}", parts[2] if len(parts) > 2 else ""

    def _resolve_url(self, path: str) -> str:
        repo_id, inner = self._split(path)
        prefix = _RESOLVE_PREFIX[self.repo_type]
        return (
            f"{self.endpoint}/{prefix}{repo_id}/resolve/"
            f"{quote(self.revision, safe='')}/{quote(inner)}"
        )

    def _api_url(self, repo_id: str, suffix: str = "") -> str:
        return f"{self.endpoint}/api/{self.repo_type}s/{repo_id}{suffix}"

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        if descriptor.protocol not in self.aliases:
            raise ProtocolNotSupportedError(descriptor.protocol)

        repo_type = descriptor.option("repo_type", "dataset")
        if repo_type not in REPO_TYPES:
            raise InvalidConfigError(f"Unknown repo_type: {repo_type}")

        self.endpoint = (descriptor.endpoint or DEFAULT_ENDPOINT).rstrip("/")
        self.repo_id = descriptor.option("repo_id")
        self.repo_type = repo_type
        self.revision = descriptor.option("revision", "main") or "main"

        headers = {}
        if descriptor.password:
            headers["Authorization"] = f"Bearer {descriptor.password}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
            follow_redirects=True,
        )

        if self.repo_id:
            what = f"Repository {self.repo_id}"
            try:
                response = await send(self._client, "GET", self._api_url(self.repo_id), what)
                check_response(response, what)
            except AuthenticationFailedError:
                await self.disconnect()
                raise
            except StorageError as e:
                await self.disconnect()
                raise ConnectionFailedError(f"{what}: {e}") from e

    async def is_connected(self) -> bool:
        return self._client is not None

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_file_size(self, path: str) -> int:
        client = self._require_client()
        what = f"HEAD {path}"
        response = check_response(
            await send(client, "HEAD", self._resolve_url(path), what),
            what,
        )
        # LFS files redirect to a CDN; the hub reports the real size up front
        for candidate in (*response.history, response):
            linked = candidate.headers.get("x-linked-size")
            if linked and linked.isdigit():
                return int(linked)
        length = response.headers.get("content-length")
        if length is None or not length.isdigit():
            raise RequestFailedError(f"{what}: size unavailable")
        return int(length)

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        client = self._require_client()
        if length <= 0:
            return b""
        what = f"GET {path} [{offset}+{length}]"
        response = await send(
            client,
            "GET",
            self._resolve_url(path),
            what,
            headers={"Range": f"bytes={offset}-{offset + length - 1}"},
        )
        return slice_range_response(response, offset, length, what)

    async def read_full(self, path: str) -> bytes:
        client = self._require_client()
        what = f"GET {path}"
        response = check_response(
            await send(client, "GET", self._resolve_url(path), what),
            what,
        )
        return response.content

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        client = self._require_client()
        repo_id, inner = self._split(path)
        suffix = f"/tree/{quote(self.revision, safe='')}"
        if inner:
            suffix += f"/{quote(inner)}"

        params = {"expand": "true"}
        if options is not None and options.recursive:
            params["recursive"] = "true"

        what = f"List {repo_id}/{inner}"
        response = check_response(
            await send(client, "GET", self._api_url(repo_id, suffix), what, params=params),
            what,
        )

        files = []
        for item in response.json():
            item_path = item.get("path", "")
            is_dir = item.get("type") == "directory"
            last_commit = item.get("lastCommit") or {}
            files.append(FileInfo(
                filename=item_path,
                basename=basename(item_path),
                lastmod=last_commit.get("date", ""),
                size=0 if is_dir else int(item.get("size", 0)),
                file_type="directory" if is_dir else "file",
                mime=None if is_dir else guess_mime_type(item_path),
                etag=item.get("oid"),
            ))

        return apply_list_options(path, files, options)

    def build_protocol_url(self, path: str) -> str:
        clean = path.strip("/")
        if self.repo_id:
            return f"huggingface://{self.repo_id}/{clean}" if clean else f"huggingface://{self.repo_id}"
        return f"huggingface://{clean}"
