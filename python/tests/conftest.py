"""Shared pytest fixtures for s3www tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers
collectors in the global prometheus_client registry).

The object store, cache and bucket filesystem are assigned to app.state by
the client fixture instead of running the lifespan, so every test gets a
freshly seeded bucket.
"""

from datetime import datetime, timezone

import pytest
from fakes import RecordingStore
from httpx import ASGITransport, AsyncClient

from s3www.cache import TTLCache
from s3www.config import ObservabilityConfig, S3Config, S3WWWConfig
from s3www.filesystem import BucketFS
from s3www.server import create_app

BUCKET = "site"

MTIME = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    """A 5-minute cache driven by the fake clock, without a cleanup task."""
    return TTLCache(ttl=300, cleanup_interval=0, clock=clock)


@pytest.fixture
def store() -> RecordingStore:
    """A bucket laid out like a small static site."""
    s = RecordingStore()
    s.put(BUCKET, "hello.txt", b"hello world", last_modified=MTIME)
    s.put(BUCKET, "blog/index.html", b"<h1>blog</h1>", last_modified=MTIME)
    s.put(BUCKET, "blog/2024/post.html", b"<p>post</p>", last_modified=MTIME)
    s.put(BUCKET, "docs/index.htm", b"<h1>docs</h1>", last_modified=MTIME)
    s.put(BUCKET, "404.html", b"<h1>not here</h1>", last_modified=MTIME)
    return s


@pytest.fixture
def fs(store, cache) -> BucketFS:
    return BucketFS(store, BUCKET, cache)


@pytest.fixture(scope="session")
def config() -> S3WWWConfig:
    return S3WWWConfig(
        s3=S3Config(backend="memory", bucket=BUCKET),
        observability=ObservabilityConfig(metrics=True, health_check=True),
    )


@pytest.fixture(scope="session")
def app(config: S3WWWConfig):
    """Create a single test FastAPI application for the whole session."""
    return create_app(config)


@pytest.fixture
async def client(app, store, cache, fs) -> AsyncClient:
    """Async test client bound to a freshly seeded bucket."""
    app.state.store = store
    app.state.cache = cache
    app.state.fs = fs

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
