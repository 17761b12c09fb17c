"""Prometheus metrics definitions for s3www.

All custom metrics use the ``s3www_`` prefix. HTTP-level metrics (request
count, duration, sizes) come from ``prometheus-fastapi-instrumentator``.

Counters reset to zero on restart. When metrics are disabled in config the
module-level references stay ``None``; callers go through the helpers below,
which are no-ops in that case.
"""

from __future__ import annotations

from prometheus_client import Counter

_initialized: bool = False

dir_cache_hits_total: Counter | None = None
dir_cache_misses_total: Counter | None = None
resolutions_total: Counter | None = None
backend_errors_total: Counter | None = None
bytes_sent_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics. Idempotent."""
    global _initialized
    global dir_cache_hits_total, dir_cache_misses_total
    global resolutions_total, backend_errors_total, bytes_sent_total

    if _initialized:
        return

    dir_cache_hits_total = Counter(
        "s3www_dir_cache_hits_total",
        "Directory-existence lookups answered from the cache",
    )
    dir_cache_misses_total = Counter(
        "s3www_dir_cache_misses_total",
        "Directory-existence lookups that required a prefix listing",
    )
    resolutions_total = Counter(
        "s3www_resolutions_total",
        "Object path resolutions by the fallback candidate that matched",
        ["candidate"],
    )
    backend_errors_total = Counter(
        "s3www_backend_errors_total",
        "Object store calls that failed, by operation",
        ["operation"],
    )
    bytes_sent_total = Counter(
        "s3www_bytes_sent_total",
        "Total object bytes streamed to clients",
    )

    _initialized = True


def record_cache_lookup(hit: bool) -> None:
    counter = dir_cache_hits_total if hit else dir_cache_misses_total
    if counter is not None:
        counter.inc()


def record_resolution(candidate: str) -> None:
    if resolutions_total is not None:
        resolutions_total.labels(candidate=candidate).inc()


def record_backend_error(operation: str) -> None:
    if backend_errors_total is not None:
        backend_errors_total.labels(operation=operation).inc()


def record_bytes_sent(n: int) -> None:
    if bytes_sent_total is not None and n > 0:
        bytes_sent_total.inc(n)
