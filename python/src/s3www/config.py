"""Configuration loading and Pydantic models for s3www."""

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field

from s3www.errors import ConfigError

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """HTTP binding and runtime configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30
    tls_cert: str = ""
    tls_key: str = ""


class S3Config(BaseModel):
    """Object store connection configuration."""

    backend: str = "s3"
    endpoint: str = ""
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    access_key_file: str = ""
    secret_key: str = ""
    secret_key_file: str = ""
    use_path_style: bool = False
    memory_seed_dir: str = ""


class CacheConfig(BaseModel):
    """Directory-existence cache configuration (Go-style durations)."""

    ttl: str = "5m"
    cleanup_interval: str = "10m"


class ObservabilityConfig(BaseModel):
    """Metrics and health probe configuration."""

    metrics: bool = True
    health_check: bool = True


class S3WWWConfig(BaseModel):
    """Top-level s3www configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    s3: S3Config = Field(default_factory=S3Config)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> float:
    """Parse a Go-style duration string into seconds.

    Accepts a sequence of decimal numbers each followed by a unit, such as
    ``"300ms"``, ``"1.5h"`` or ``"2h45m"``. A bare ``"0"`` is zero.

    Args:
        value: The duration string.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        m = _DURATION_PART_RE.match(text, pos)
        if not m:
            raise ValueError(f"invalid duration {value!r}")
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    return sign * total


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data.

    Handles nested structure: server.tls.cert -> tls_cert, server.tls.key -> tls_key.
    An ``address`` of the form HOST:PORT overrides host and port.
    """
    if data is None:
        return {}
    result: dict[str, Any] = {
        k: data[k]
        for k in ("host", "port", "log_level", "log_format", "shutdown_timeout")
        if k in data
    }
    if "address" in data:
        host, port = parse_address(str(data["address"]))
        result["host"] = host
        result["port"] = port
    tls_section = data.get("tls")
    if isinstance(tls_section, dict):
        result["tls_cert"] = tls_section.get("cert", "")
        result["tls_key"] = tls_section.get("key", "")
    return result


def _parse_s3(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the s3 section from YAML data."""
    if data is None:
        return {}
    return {k: v for k, v in data.items() if k in S3Config.model_fields}


def _parse_cache(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the cache section from YAML data.

    Durations may be written as strings ("5m") or as plain seconds (300).
    """
    if data is None:
        return {}
    result: dict[str, Any] = {}
    for k in ("ttl", "cleanup_interval"):
        if k in data:
            v = data[k]
            result[k] = f"{v}s" if isinstance(v, (int, float)) else str(v)
    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {
        "metrics": data.get("metrics", True),
        "health_check": data.get("health_check", True),
    }


def load_config(path: Path) -> S3WWWConfig:
    """Load an S3WWWConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated S3WWWConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return S3WWWConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        s3=S3Config(**_parse_s3(raw.get("s3"))),
        cache=CacheConfig(**_parse_cache(raw.get("cache"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

# env var -> (section, field)
_ENV_STRINGS = {
    "S3WWW_ENDPOINT": ("s3", "endpoint"),
    "S3WWW_ACCESS_KEY": ("s3", "access_key"),
    "S3WWW_ACCESS_KEY_FILE": ("s3", "access_key_file"),
    "S3WWW_SECRET_KEY": ("s3", "secret_key"),
    "S3WWW_SECRET_KEY_FILE": ("s3", "secret_key_file"),
    "S3WWW_BUCKET": ("s3", "bucket"),
    "S3WWW_REGION": ("s3", "region"),
    "S3WWW_SSL_CERT": ("server", "tls_cert"),
    "S3WWW_SSL_KEY": ("server", "tls_key"),
    "S3WWW_CACHE_TIME": ("cache", "ttl"),
}

_ENV_BOOLS = {
    "S3WWW_PATH_STYLE": ("s3", "use_path_style"),
    "S3WWW_METRICS": ("observability", "metrics"),
}

_TRUE = {"1", "t", "true", "yes", "on"}
_FALSE = {"0", "f", "false", "no", "off"}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(value)


def apply_env(config: S3WWWConfig, environ: Mapping[str, str] | None = None) -> S3WWWConfig:
    """Overlay ``S3WWW_*`` environment variables onto a configuration.

    Boolean values that do not parse are logged and ignored.

    Args:
        config: The configuration to update in place.
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        The same configuration object, for chaining.
    """
    env = os.environ if environ is None else environ

    for name, (section, field) in _ENV_STRINGS.items():
        if name in env:
            setattr(getattr(config, section), field, env[name])

    for name, (section, field) in _ENV_BOOLS.items():
        if name in env:
            try:
                setattr(getattr(config, section), field, _parse_bool(env[name]))
            except ValueError:
                logger.warning("String of %r did not parse as bool for env var %r", env[name], name)

    if "S3WWW_ADDRESS" in env:
        try:
            config.server.host, config.server.port = parse_address(env["S3WWW_ADDRESS"])
        except ValueError:
            logger.warning("Ignoring malformed S3WWW_ADDRESS %r", env["S3WWW_ADDRESS"])

    return config


def parse_address(address: str) -> tuple[str, int]:
    """Split an ADDRESS:PORT string into host and port.

    Raises:
        ValueError: If the port is missing or not numeric.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address {address!r}, expected ADDRESS:PORT")
    return host.strip("[]") or "0.0.0.0", int(port)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _read_key_file(path: str, what: str) -> str:
    try:
        return Path(path).read_text().strip()
    except OSError as exc:
        raise ConfigError(f"Failed to read {what} file {path!r}") from exc


def validate_config(config: S3WWWConfig) -> S3WWWConfig:
    """Check a configuration for fatal errors and resolve key files.

    Key files, when set, replace the inline access/secret keys with the
    file's stripped contents.

    Raises:
        ConfigError: For an empty bucket, a malformed endpoint, an unparsable
            cache duration, an unreadable key file, or a lone TLS cert/key.
    """
    s3 = config.s3
    if not s3.bucket.strip():
        raise ConfigError(
            "Bucket name cannot be empty, please provide 's3www --bucket \"mybucket\"'"
        )

    if s3.backend not in ("s3", "memory"):
        raise ConfigError(f"Unknown storage backend: {s3.backend}")

    if s3.endpoint:
        parsed = urlparse(s3.endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Malformed endpoint URL: {s3.endpoint!r}")
        try:
            parsed.port
        except ValueError as exc:
            raise ConfigError(f"Malformed endpoint URL: {s3.endpoint!r}") from exc

    for field in ("ttl", "cleanup_interval"):
        value = getattr(config.cache, field)
        try:
            seconds = parse_duration(value)
        except ValueError as exc:
            raise ConfigError(f"Cannot parse cache {field} {value!r}") from exc
        if seconds < 0:
            raise ConfigError(f"Cache {field} must not be negative: {value!r}")

    if s3.access_key_file:
        s3.access_key = _read_key_file(s3.access_key_file, "access key")
    if s3.secret_key_file:
        s3.secret_key = _read_key_file(s3.secret_key_file, "secret key")

    if bool(config.server.tls_cert) != bool(config.server.tls_key):
        raise ConfigError("Both a TLS certificate and a TLS key are required to serve HTTPS")

    return config
