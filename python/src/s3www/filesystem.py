"""Filesystem view of a bucket for the HTTP file-serving layer.

``BucketFS.open(path)`` is the whole contract: it returns either a
``DirectoryHandle`` or an ``ObjectHandle``, or raises ``FileNotFoundError``.
Handles are created per request and never reused.

Directory handles never enumerate real children. The HTTP layer only needs
to know that a directory exists so it can look for an index document;
content is discovered through the resolver's fallback chain.
"""

import os
import posixpath
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from s3www.cache import TTLCache
from s3www.errors import NotFound
from s3www.resolver import PATH_SEPARATOR, PathResolver, ResolvedObject, object_key
from s3www.storage.backend import ObjectStore


@dataclass(frozen=True)
class FileInfo:
    """What ``stat()`` reports to the HTTP layer."""

    name: str
    size: int
    modified: datetime | None
    is_dir: bool
    etag: str = ""
    content_type: str = ""


@dataclass
class DirectoryHandle:
    """A prefix with at least one object under it (or the root)."""

    store: ObjectStore
    bucket: str
    prefix: str

    is_dir: ClassVar[bool] = True

    def stat(self) -> FileInfo:
        name = posixpath.basename(self.prefix.rstrip(PATH_SEPARATOR)) or PATH_SEPARATOR
        return FileInfo(name=name, size=0, modified=None, is_dir=self.is_dir)

    async def readdir(self, count: int = -1) -> list[FileInfo]:
        """Always empty: the directory exists but its children are not listed."""
        return []

    async def read(self, size: int = -1) -> bytes:
        raise IsADirectoryError(self.prefix)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        raise IsADirectoryError(self.prefix)

    async def close(self) -> None:
        pass


@dataclass
class ObjectHandle:
    """A resolved object with a read position.

    ``seek()`` moves the position; ``stream()`` and ``read()`` consume
    bytes from it.

    Attributes:
        resolved: The object, its metadata and the fallback candidate that matched.
    """

    resolved: ResolvedObject
    _pos: int = field(default=0, init=False, repr=False)

    is_dir: ClassVar[bool] = False

    @property
    def key(self) -> str:
        return self.resolved.info.key

    @property
    def size(self) -> int:
        return self.resolved.info.size

    @property
    def is_not_found_document(self) -> bool:
        return self.resolved.is_not_found_document

    def stat(self) -> FileInfo:
        info = self.resolved.info
        return FileInfo(
            name=posixpath.basename(info.key),
            size=info.size,
            modified=info.last_modified,
            is_dir=self.is_dir,
            etag=info.etag,
            content_type=info.content_type,
        )

    async def readdir(self, count: int = -1) -> list[FileInfo]:
        raise NotADirectoryError(self.key)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the read position, like ``io.IOBase.seek``.

        Raises:
            ValueError: If the resulting position would be negative.
        """
        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self._pos + offset
        elif whence == os.SEEK_END:
            pos = self.size + offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        if pos < 0:
            raise ValueError(f"negative seek position {pos}")
        self._pos = pos
        return pos

    async def stream(self, length: int | None = None) -> AsyncIterator[bytes]:
        """Yield up to ``length`` bytes (all remaining if None) from the
        current position, advancing it as chunks are consumed.
        """
        remaining = self.size - self._pos
        if length is not None:
            remaining = min(length, remaining)
        if remaining <= 0:
            return
        async for chunk in self.resolved.obj.read(self._pos, remaining):
            self._pos += len(chunk)
            yield chunk

    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes from the current position (all if negative)."""
        if size == 0:
            return b""
        return b"".join([chunk async for chunk in self.stream(None if size < 0 else size)])

    async def close(self) -> None:
        pass


FileHandle = DirectoryHandle | ObjectHandle


class BucketFS:
    """Opens request paths against a bucket.

    Holds no state of its own beyond its collaborators.
    """

    def __init__(self, store: ObjectStore, bucket: str, cache: TTLCache) -> None:
        self.store = store
        self.bucket = bucket
        self.resolver = PathResolver(store, bucket, cache)

    async def open(self, path: str) -> FileHandle:
        """Open ``path`` as a directory or as the first resolvable object.

        Raises:
            FileNotFoundError: If the path is not a directory and no
                fallback candidate resolves.
        """
        if await self.resolver.is_directory(path):
            return DirectoryHandle(
                store=self.store,
                bucket=self.bucket,
                prefix=path.removesuffix(PATH_SEPARATOR),
            )

        try:
            resolved = await self.resolver.resolve(object_key(path))
        except NotFound as exc:
            raise FileNotFoundError(path) from exc
        return ObjectHandle(resolved)
