"""S3 object store client for s3www.

Wraps an aiobotocore S3 client. Credentials are either the static
access/secret pair from configuration or, when that pair is incomplete,
the standard AWS credential chain (env vars, ~/.aws/credentials, IAM role).

Any S3-compatible endpoint (MinIO, Ceph, R2, ...) can be used by setting
``endpoint_url``; path-style addressing is available for servers that do
not support virtual-hosted buckets.
"""

import logging
import re
from collections.abc import AsyncIterator
from urllib.parse import urlparse

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3www.errors import BackendUnavailable, ConfigError, NoSuchKey
from s3www.storage.backend import ObjectInfo

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")

_DEFAULT_REGION = "us-east-1"

# Amazon S3 host patterns that carry the region in the hostname.
_REGION_HOST_RES = (
    re.compile(r"^s3[.-]dualstack\.([a-z0-9-]+)\.amazonaws\.com(\.cn)?$"),
    re.compile(r"^s3-fips\.([a-z0-9-]+)\.amazonaws\.com$"),
    re.compile(r"^s3[.-]([a-z0-9-]+)\.amazonaws\.com(\.cn)?$"),
    re.compile(r"^[^.]+\.s3[.-]([a-z0-9-]+)\.amazonaws\.com(\.cn)?$"),
)


def region_from_endpoint(endpoint: str) -> str:
    """Derive the AWS region from an Amazon S3 endpoint URL.

    Returns an empty string for non-AWS endpoints and for the global
    ``s3.amazonaws.com`` host.
    """
    host = (urlparse(endpoint).hostname or "").lower()
    if host == "s3-external-1.amazonaws.com":
        return _DEFAULT_REGION
    for pattern in _REGION_HOST_RES:
        m = pattern.match(host)
        if m:
            return m.group(1)
    return ""


def error_code(exc: ClientError) -> str:
    """Return the S3 error code carried by a botocore ClientError."""
    return exc.response.get("Error", {}).get("Code", "")


class S3Object:
    """Lazy handle to one object in an S3 bucket.

    No request is made until ``stat()`` or ``read()`` is called. The first
    successful ``stat()`` result is kept for the handle's lifetime.
    """

    def __init__(self, client, bucket: str, key: str) -> None:
        self._client = client
        self.bucket = bucket
        self.key = key
        self._info: ObjectInfo | None = None

    async def stat(self) -> ObjectInfo:
        if self._info is not None:
            return self._info
        try:
            resp = await self._client.head_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            if error_code(e) in _NOT_FOUND_CODES:
                raise NoSuchKey(self.key) from e
            raise BackendUnavailable(
                f"HeadObject {self.bucket}/{self.key}: {e}", code=error_code(e) or "BackendUnavailable"
            ) from e
        except BotoCoreError as e:
            raise BackendUnavailable(f"HeadObject {self.bucket}/{self.key}: {e}") from e

        self._info = ObjectInfo(
            key=self.key,
            size=int(resp.get("ContentLength", 0)),
            last_modified=resp.get("LastModified"),
            etag=resp.get("ETag", ""),
            content_type=resp.get("ContentType", ""),
        )
        return self._info

    async def read(self, offset: int = 0, length: int | None = None) -> AsyncIterator[bytes]:
        """Stream the object in 64KB chunks, using a Range request when needed.

        Raises:
            NoSuchKey: If the object does not exist.
            BackendUnavailable: If the request fails.
        """
        if length is not None and length <= 0:
            return

        kwargs: dict = {"Bucket": self.bucket, "Key": self.key}
        if offset > 0 or length is not None:
            if length is not None:
                kwargs["Range"] = f"bytes={offset}-{offset + length - 1}"
            else:
                kwargs["Range"] = f"bytes={offset}-"

        try:
            resp = await self._client.get_object(**kwargs)
        except ClientError as e:
            if error_code(e) in _NOT_FOUND_CODES:
                raise NoSuchKey(self.key) from e
            raise BackendUnavailable(f"GetObject {self.bucket}/{self.key}: {e}") from e
        except BotoCoreError as e:
            raise BackendUnavailable(f"GetObject {self.bucket}/{self.key}: {e}") from e

        async with resp["Body"] as stream:
            while True:
                chunk = await stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk


class S3ObjectStore:
    """Object store client backed by aiobotocore.

    Attributes:
        endpoint_url: Custom S3 endpoint, or empty for AWS.
        region: Region used for request signing.
        use_path_style: Force path-style bucket addressing.
    """

    def __init__(
        self,
        endpoint_url: str = "",
        region: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        use_path_style: bool = False,
        max_pool_connections: int = 1024,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.region = region or region_from_endpoint(endpoint_url) or _DEFAULT_REGION
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.use_path_style = use_path_style
        self.max_pool_connections = max_pool_connections
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    async def init(self, bucket: str | None = None) -> None:
        """Create the aiobotocore S3 client.

        Args:
            bucket: When given, verify it is reachable with ``head_bucket``.

        Raises:
            ConfigError: If the bucket does not exist or is inaccessible.
        """
        client_kwargs: dict = {
            "region_name": self.region,
            "config": BotoConfig(
                s3={"addressing_style": "path" if self.use_path_style else "auto"},
                max_pool_connections=self.max_pool_connections,
                connect_timeout=30,
                tcp_keepalive=True,
            ),
        }
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url

        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        if bucket:
            try:
                await self._client.head_bucket(Bucket=bucket)
            except (ClientError, BotoCoreError) as e:
                code = error_code(e) if isinstance(e, ClientError) else type(e).__name__
                await self.close()
                raise ConfigError(f"Cannot access bucket '{bucket}': {code}") from e

        logger.info(
            "S3 client initialized: endpoint=%s region=%s path_style=%s",
            self.endpoint_url or "aws",
            self.region,
            self.use_path_style,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def list_objects(
        self, bucket: str, prefix: str, page_size: int = 1000
    ) -> AsyncIterator[str]:
        """Yield keys under ``prefix`` page by page.

        Raises:
            BackendUnavailable: If a ListObjectsV2 call fails.
        """
        paginator = self._client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=bucket, Prefix=prefix, PaginationConfig={"PageSize": page_size}
        )
        try:
            async for page in pages:
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except ClientError as e:
            raise BackendUnavailable(
                f"ListObjectsV2 {bucket}/{prefix}: {e}", code=error_code(e) or "BackendUnavailable"
            ) from e
        except BotoCoreError as e:
            raise BackendUnavailable(f"ListObjectsV2 {bucket}/{prefix}: {e}") from e

    def get_object(self, bucket: str, key: str) -> S3Object:
        if not key:
            raise ValueError("Object name cannot be empty")
        return S3Object(self._client, bucket, key)
