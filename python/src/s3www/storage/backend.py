"""Object store client protocol for s3www."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata reported by the object store for a single object."""

    key: str
    size: int
    last_modified: datetime | None = None
    etag: str = ""
    content_type: str = ""


class StoredObject(Protocol):
    """A lazily opened object handle.

    Obtaining the handle does not contact the backend; ``stat()`` and
    ``read()`` do.
    """

    key: str

    async def stat(self) -> ObjectInfo:
        """Fetch the object's metadata.

        Raises:
            NoSuchKey: If the object does not exist.
            BackendUnavailable: If the backend could not be reached.
        """
        ...

    def read(self, offset: int = 0, length: int | None = None) -> AsyncIterator[bytes]:
        """Stream the object's bytes starting at ``offset``.

        Args:
            offset: Byte offset to start reading from.
            length: Number of bytes to read, or None for all remaining.

        Returns:
            An async iterator yielding byte chunks.
        """
        ...


class ObjectStore(Protocol):
    """Read-only view of an object store used by the filesystem adapter.

    Implementations own connection pooling, retries and credentials.
    """

    async def init(self, bucket: str | None = None) -> None:
        """Connect to the backend, verifying ``bucket`` when given.

        Raises:
            ConfigError: If the bucket cannot be accessed.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the client."""
        ...

    def list_objects(
        self, bucket: str, prefix: str, page_size: int = 1000
    ) -> AsyncIterator[str]:
        """Lazily list keys under ``prefix``.

        Pages are fetched on demand; closing the iterator early stops any
        further backend calls.

        Raises:
            BackendUnavailable: If a listing call fails.
        """
        ...

    def get_object(self, bucket: str, key: str) -> StoredObject:
        """Return a lazy handle for ``key``.

        Raises:
            ValueError: If ``key`` is empty.
        """
        ...
