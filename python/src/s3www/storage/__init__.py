"""Object store clients for s3www."""

from typing import TYPE_CHECKING

from s3www.storage.backend import ObjectInfo, ObjectStore, StoredObject

if TYPE_CHECKING:
    from s3www.config import S3Config

__all__ = [
    "create_object_store",
    "ObjectInfo",
    "ObjectStore",
    "StoredObject",
]


def create_object_store(config: "S3Config") -> ObjectStore:
    """Create an object store client based on configuration.

    Args:
        config: The s3 configuration section.

    Returns:
        An object store implementing the ObjectStore protocol.

    Raises:
        ValueError: If the backend is unknown.
    """
    if config.backend == "s3":
        from s3www.storage.aws import S3ObjectStore

        return S3ObjectStore(
            endpoint_url=config.endpoint,
            region=config.region,
            access_key_id=config.access_key,
            secret_access_key=config.secret_key,
            use_path_style=config.use_path_style,
        )

    elif config.backend == "memory":
        from s3www.storage.memory import MemoryObjectStore

        return MemoryObjectStore(seed_dir=config.memory_seed_dir)

    raise ValueError(f"Unknown storage backend: {config.backend}")
