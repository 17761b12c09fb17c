"""Directory detection and object resolution over a flat key namespace.

Object stores have no directories, only keys. A request path is treated as
a directory when at least one key starts with ``<path>/``; that answer is
cached for a bounded time.

Paths that are not directories are resolved through a fixed fallback
chain, tried strictly in order until one candidate both opens and stats:

    1. the exact key
    2. ``<key>/index.html``
    3. ``<key>/index.htm``
    4. the bucket's ``404.html``
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass

from s3www import metrics
from s3www.cache import TTLCache
from s3www.errors import BackendUnavailable, GatewayError, NoSuchKey, NotFound
from s3www.storage.backend import ObjectInfo, ObjectStore, StoredObject

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "/"
INDEX_DOCUMENTS = ("index.html", "index.htm")
NOT_FOUND_DOCUMENT = "404.html"

# candidate label used in logs and metrics for the not-found document
NOT_FOUND_CANDIDATE = "404"


def dir_key(path: str) -> str:
    """Normalize a request path to directory form: no leading separator,
    exactly one trailing separator. The root normalizes to ``"/"``.
    """
    return path.strip(PATH_SEPARATOR) + PATH_SEPARATOR


def object_key(path: str) -> str:
    """Strip the leading separator from a request path."""
    return path.removeprefix(PATH_SEPARATOR)


def fallback_candidates(name: str) -> list[tuple[str, str]]:
    """Return the ordered (key, label) pairs tried when resolving ``name``."""
    return [
        (name, "exact"),
        (name + PATH_SEPARATOR + INDEX_DOCUMENTS[0], INDEX_DOCUMENTS[0]),
        (name + PATH_SEPARATOR + INDEX_DOCUMENTS[1], INDEX_DOCUMENTS[1]),
        (NOT_FOUND_DOCUMENT, NOT_FOUND_CANDIDATE),
    ]


@dataclass(frozen=True)
class ResolvedObject:
    """The object a request path resolved to."""

    obj: StoredObject
    info: ObjectInfo
    candidate: str

    @property
    def is_not_found_document(self) -> bool:
        return self.candidate == NOT_FOUND_CANDIDATE


class PathResolver:
    """Classifies request paths and resolves them to bucket objects.

    Attributes:
        store: The object store client.
        bucket: The bucket being served.
        cache: Directory-existence cache (directory-form key -> bool).
    """

    def __init__(self, store: ObjectStore, bucket: str, cache: TTLCache) -> None:
        self.store = store
        self.bucket = bucket
        self.cache = cache

    async def is_directory(self, path: str) -> bool:
        """Return True if any object exists under ``path`` as a prefix.

        The root is always a directory and never touches the cache or the
        backend. Other answers come from the cache or, on a miss, from a
        single-entry prefix listing that stops at the first key.

        A listing failure is logged and answered False, but that answer is
        not cached: only confirmed answers live for the cache TTL.
        """
        name = dir_key(path)
        if name == PATH_SEPARATOR:
            return True

        cached = self.cache.get(name)
        if cached is not None:
            metrics.record_cache_lookup(hit=True)
            return cached
        metrics.record_cache_lookup(hit=False)

        found = False
        try:
            async with aclosing(self.store.list_objects(self.bucket, name, page_size=1)) as keys:
                async for _ in keys:
                    found = True
                    break
        except BackendUnavailable as exc:
            metrics.record_backend_error("list")
            logger.warning(
                "Listing %s/%s failed, treating as not a directory: %s",
                self.bucket,
                name,
                exc,
                extra={"bucket": self.bucket, "key": name},
            )
            return False

        self.cache.set(name, found)
        return found

    async def resolve(self, name: str) -> ResolvedObject:
        """Resolve a non-directory path to the first retrievable candidate.

        Args:
            name: Request path with the leading separator stripped.

        Returns:
            The first candidate that opens and stats successfully.

        Raises:
            NotFound: If none of the candidates resolve.
        """
        for key, label in fallback_candidates(name):
            try:
                obj = self.store.get_object(self.bucket, key)
            except (ValueError, GatewayError) as exc:
                logger.info("Cannot open %s/%s: %s", self.bucket, key, exc)
                continue

            try:
                info = await obj.stat()
            except NoSuchKey:
                # an absent 404.html is not logged
                if label != NOT_FOUND_CANDIDATE:
                    logger.info(
                        "No such key %s/%s", self.bucket, key,
                        extra={"bucket": self.bucket, "key": key},
                    )
                continue
            except GatewayError as exc:
                metrics.record_backend_error("stat")
                logger.warning(
                    "Stat %s/%s failed: %s", self.bucket, key, exc,
                    extra={"bucket": self.bucket, "key": key},
                )
                continue

            metrics.record_resolution(label)
            return ResolvedObject(obj=obj, info=info, candidate=label)

        metrics.record_resolution("none")
        raise NotFound(name)
