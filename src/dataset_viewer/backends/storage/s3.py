"""S3-compatible object storage backend (AWS S3, Aliyun OSS, R2, MinIO)."""

from typing import Any, Callable, TypeVar

import boto3
import botocore.config
import botocore.exceptions

from dataset_viewer.exceptions import (
    AuthenticationFailedError,
    InvalidConfigError,
    NetworkError,
    NotConnectedError,
    ProtocolNotSupportedError,
    RequestFailedError,
    StorageError,
    StorageNotFoundError,
)
from dataset_viewer.protocols.storage import (
    ConnectionDescriptor,
    DirectoryListing,
    FileInfo,
    ListOptions,
)
from dataset_viewer.utils.paths import basename, guess_mime_type
from dataset_viewer.workers import run_blocking

T = TypeVar("T")

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
_AUTH_CODES = {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


def _translate_error(e: Exception, what: str) -> StorageError:
    """Map a botocore exception onto the storage error taxonomy."""
    if isinstance(e, botocore.exceptions.ClientError):
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in _NOT_FOUND_CODES:
            return StorageNotFoundError(f"{what}: not found")
        if code in _AUTH_CODES:
            return AuthenticationFailedError(f"{what}: {code}")
        return RequestFailedError(f"{what}: {e}")
    if isinstance(e, botocore.exceptions.NoCredentialsError):
        return AuthenticationFailedError(f"{what}: no credentials")
    return NetworkError(f"{what}: {e}")


class S3StorageBackend:
    """S3/OSS storage backend using boto3.

    boto3 is synchronous, so every request runs in the shared worker pool.
    Range reads map directly onto ranged ``GetObject`` requests.
    """

    protocol = "s3"
    aliases = ("s3", "oss")

    def __init__(self, client: Any = None, **kwargs: Any) -> None:
        """Initialize S3 backend.

        Args:
            client: Pre-built boto3 S3 client (tests inject a stubbed one)
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._client = client
        self._injected_client = client is not None
        self.bucket: str | None = None
        self._connected = False

    @staticmethod
    def _validate(descriptor: ConnectionDescriptor) -> None:
        if descriptor.protocol not in S3StorageBackend.aliases:
            raise ProtocolNotSupportedError(descriptor.protocol)
        if not descriptor.access_key:
            raise InvalidConfigError("Access key is required")
        if not descriptor.secret_key:
            raise InvalidConfigError("Secret key is required")
        if not descriptor.bucket:
            raise InvalidConfigError("Bucket is required")
        if descriptor.protocol == "oss" and not (descriptor.endpoint or descriptor.url):
            raise InvalidConfigError("OSS endpoint is required")

    @staticmethod
    def _build_client(descriptor: ConnectionDescriptor) -> Any:
        endpoint = descriptor.endpoint or descriptor.url
        if endpoint and "://" not in endpoint:
            endpoint = f"https://{endpoint}"
        addressing_style = descriptor.option("addressing_style", "auto")
        return boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=descriptor.access_key,
            aws_secret_access_key=descriptor.secret_key,
            region_name=descriptor.region or "us-east-1",
            config=botocore.config.Config(
                signature_version="s3v4",
                s3={"addressing_style": addressing_style},
            ),
        )

    async def _call(self, what: str, func: Callable[..., T], **kwargs: Any) -> T:
        try:
            return await run_blocking(func, **kwargs)
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise _translate_error(e, what) from e

    def _require_connected(self) -> Any:
        if not self._connected or self._client is None:
            raise NotConnectedError()
        return self._client

    @staticmethod
    def _key(path: str) -> str:
        return path.lstrip("/")

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        self._validate(descriptor)
        if self._client is None:
            self._client = self._build_client(descriptor)
        self.bucket = descriptor.bucket

        await self._call(
            f"Connect to bucket {self.bucket}",
            self._client.head_bucket,
            Bucket=self.bucket,
        )
        self._connected = True

    async def is_connected(self) -> bool:
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False
        if self._client is not None and not self._injected_client:
            self._client.close()
            self._client = None

    async def get_file_size(self, path: str) -> int:
        client = self._require_connected()
        response = await self._call(
            f"HeadObject {path}",
            client.head_object,
            Bucket=self.bucket,
            Key=self._key(path),
        )
        return int(response["ContentLength"])

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        client = self._require_connected()
        if length <= 0:
            return b""

        def _get() -> bytes:
            response = client.get_object(
                Bucket=self.bucket,
                Key=self._key(path),
                Range=f"bytes={offset}-{offset + length - 1}",
            )
            return response["Body"].read()

        try:
            return await self._call(f"GetObject {path} [{offset}+{length}]", _get)
        except RequestFailedError as e:
            # Range starting at or past EOF: a short (empty) read, not a failure
            if isinstance(e.__cause__, botocore.exceptions.ClientError) and (
                e.__cause__.response.get("Error", {}).get("Code") == "InvalidRange"
            ):
                return b""
            raise

    async def read_full(self, path: str) -> bytes:
        client = self._require_connected()

        def _get() -> bytes:
            response = client.get_object(Bucket=self.bucket, Key=self._key(path))
            return response["Body"].read()

        return await self._call(f"GetObject {path}", _get)

    async def list_directory(
        self,
        path: str,
        options: ListOptions | None = None,
    ) -> DirectoryListing:
        client = self._require_connected()
        options = options or ListOptions()
        prefix = self._key(path)
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        if options.prefix:
            prefix += options.prefix

        kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": options.page_size or 1000,
        }
        if not options.recursive:
            kwargs["Delimiter"] = "/"
        if options.marker:
            kwargs["ContinuationToken"] = options.marker

        response = await self._call(f"ListObjectsV2 {path}", client.list_objects_v2, **kwargs)

        files: list[FileInfo] = []
        for common in response.get("CommonPrefixes", []):
            key = common["Prefix"]
            files.append(FileInfo(
                filename=key.rstrip("/"),
                basename=basename(key),
                lastmod="",
                size=0,
                file_type="directory",
            ))
        for obj in response.get("Contents", []):
            key = obj["Key"]
            if key == prefix:
                continue
            files.append(FileInfo(
                filename=key,
                basename=basename(key),
                lastmod=obj["LastModified"].isoformat(),
                size=int(obj["Size"]),
                file_type="file",
                mime=guess_mime_type(key),
                etag=str(obj.get("ETag", "")).strip('"') or None,
            ))

        truncated = bool(response.get("IsTruncated"))
        return DirectoryListing(
            path=path,
            files=files,
            has_more=truncated,
            next_marker=response.get("NextContinuationToken") if truncated else None,
            total_count=None,
        )

    def build_protocol_url(self, path: str) -> str:
        key = self._key(path)
        if not key:
            return f"{self.protocol}://{self.bucket}"
        return f"{self.protocol}://{self.bucket}/{key}"
