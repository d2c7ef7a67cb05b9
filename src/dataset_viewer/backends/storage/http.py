"""Shared httpx plumbing for the HTTP-based backends (WebDAV, HuggingFace)."""

from typing import Any

import httpx

from dataset_viewer.exceptions import (
    AuthenticationFailedError,
    NetworkError,
    RequestFailedError,
    StorageNotFoundError,
)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


def check_response(response: httpx.Response, what: str) -> httpx.Response:
    """Raise the storage error matching a failed response's status code."""
    status = response.status_code
    if status < 400:
        return response
    if status in (401, 403):
        raise AuthenticationFailedError(f"{what}: HTTP {status}")
    if status == 404:
        raise StorageNotFoundError(f"{what}: not found")
    raise RequestFailedError(f"{what}: HTTP {status}")


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    what: str,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a request, translating transport failures into ``NetworkError``.

    Status codes are left to the caller: some (416 on a range past EOF)
    are not failures.
    """
    try:
        return await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise NetworkError(f"{what}: {e}") from e


def slice_range_response(
    response: httpx.Response,
    offset: int,
    length: int,
    what: str,
) -> bytes:
    """Bytes ``[offset, offset + length)`` from a ranged GET response.

    Servers that ignore ``Range`` answer 200 with the whole body, which is
    sliced locally.
    """
    if response.status_code == 416:
        return b""
    check_response(response, what)
    if response.status_code == 206:
        return response.content[:length]
    return response.content[offset:offset + length]
