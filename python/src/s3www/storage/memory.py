"""In-memory object store for s3www.

Implements the ObjectStore protocol with a dictionary keyed by
(bucket, key). Useful for local development and tests; contents live only
for the lifetime of the process and can be seeded from a local directory.
"""

import hashlib
import logging
import mimetypes
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

from s3www.errors import ConfigError, NoSuchKey
from s3www.storage.backend import ObjectInfo

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches the S3 client)
_CHUNK_SIZE = 64 * 1024


class MemoryObject:
    """Lazy handle to one object held by a MemoryObjectStore."""

    def __init__(self, objects: dict, bucket: str, key: str) -> None:
        self._objects = objects
        self.bucket = bucket
        self.key = key

    def _entry(self) -> tuple[bytes, ObjectInfo]:
        entry = self._objects.get((self.bucket, self.key))
        if entry is None:
            raise NoSuchKey(self.key)
        return entry

    async def stat(self) -> ObjectInfo:
        return self._entry()[1]

    async def read(self, offset: int = 0, length: int | None = None) -> AsyncIterator[bytes]:
        data, _ = self._entry()
        end = len(data) if length is None else min(len(data), offset + length)
        pos = offset
        while pos < end:
            chunk = data[pos : min(pos + _CHUNK_SIZE, end)]
            pos += len(chunk)
            yield chunk


class MemoryObjectStore:
    """Dictionary-backed object store.

    Objects are added with ``put()``; there is no HTTP write path.
    """

    def __init__(self, seed_dir: str = "") -> None:
        self.seed_dir = seed_dir
        # (bucket, key) -> (data, info)
        self._objects: dict[tuple[str, str], tuple[bytes, ObjectInfo]] = {}

    async def init(self, bucket: str | None = None) -> None:
        """Load ``seed_dir`` into ``bucket`` when both are set.

        Every regular file becomes an object keyed by its path relative to
        the seed directory, with its modification time preserved.
        """
        if self.seed_dir and bucket:
            root = Path(self.seed_dir)
            if not root.is_dir():
                raise ConfigError(f"Memory seed directory not found: {self.seed_dir}")
            for path in sorted(root.rglob("*")):
                if path.is_file():
                    mtime = datetime.fromtimestamp(int(path.stat().st_mtime), tz=timezone.utc)
                    self.put(bucket, path.relative_to(root).as_posix(), path.read_bytes(),
                             last_modified=mtime)
        logger.info("Memory object store initialized (objects=%d)", len(self._objects))

    async def close(self) -> None:
        pass

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "",
        last_modified: datetime | None = None,
    ) -> ObjectInfo:
        """Store an object, replacing any previous one under the same key.

        Content type defaults to a guess from the key's extension.
        """
        if not content_type:
            content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        info = ObjectInfo(
            key=key,
            size=len(data),
            last_modified=last_modified or datetime.now(timezone.utc).replace(microsecond=0),
            etag=f'"{hashlib.md5(data).hexdigest()}"',
            content_type=content_type,
        )
        self._objects[(bucket, key)] = (data, info)
        return info

    def remove(self, bucket: str, key: str) -> None:
        self._objects.pop((bucket, key), None)

    async def list_objects(
        self, bucket: str, prefix: str, page_size: int = 1000
    ) -> AsyncIterator[str]:
        keys = sorted(k for (b, k) in self._objects if b == bucket and k.startswith(prefix))
        for key in keys:
            yield key

    def get_object(self, bucket: str, key: str) -> MemoryObject:
        if not key:
            raise ValueError("Object name cannot be empty")
        return MemoryObject(self._objects, bucket, key)
