"""CLI entry point for s3www."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from s3www.config import (
    S3WWWConfig,
    apply_env,
    load_config,
    parse_address,
    validate_config,
)
from s3www.errors import ConfigError
from s3www.logging_config import configure_logging
from s3www.server import create_app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Every flag defaults to None so that only flags actually given override
    the environment and the config file.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="s3www",
        description="s3www - serve static files from an S3 bucket",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument("--endpoint", default=None, help="S3 server endpoint")
    parser.add_argument(
        "--access-key", "--accessKey", dest="access_key", default=None,
        help="Access key of S3 storage",
    )
    parser.add_argument(
        "--access-key-file", "--accessKeyFile", dest="access_key_file", default=None,
        help="File which contains the access key",
    )
    parser.add_argument(
        "--secret-key", "--secretKey", dest="secret_key", default=None,
        help="Secret key of S3 storage",
    )
    parser.add_argument(
        "--secret-key-file", "--secretKeyFile", dest="secret_key_file", default=None,
        help="File which contains the secret key",
    )
    parser.add_argument("--bucket", default=None, help="Bucket name which hosts static files")
    parser.add_argument(
        "--address", default=None,
        help="Bind to a specific ADDRESS:PORT, ADDRESS can be an IP or hostname "
        "(default: 127.0.0.1:8080)",
    )
    parser.add_argument("--ssl-cert", dest="ssl_cert", default=None, help="TLS certificate for this server")
    parser.add_argument("--ssl-key", dest="ssl_key", default=None, help="TLS private key for this server")
    parser.add_argument(
        "--cache-time", dest="cache_time", default=None,
        help="Time to keep cache about directory listings (default: 5m)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    return parser.parse_args(argv)


def apply_args(config: S3WWWConfig, args: argparse.Namespace) -> S3WWWConfig:
    """Apply CLI overrides onto a configuration.

    Raises:
        ValueError: If ``--address`` is not of the form ADDRESS:PORT.
    """
    overrides = {
        ("s3", "endpoint"): args.endpoint,
        ("s3", "access_key"): args.access_key,
        ("s3", "access_key_file"): args.access_key_file,
        ("s3", "secret_key"): args.secret_key,
        ("s3", "secret_key_file"): args.secret_key_file,
        ("s3", "bucket"): args.bucket,
        ("server", "tls_cert"): args.ssl_cert,
        ("server", "tls_key"): args.ssl_key,
        ("server", "log_level"): args.log_level,
        ("server", "log_format"): args.log_format,
        ("cache", "ttl"): args.cache_time,
    }
    for (section, field), value in overrides.items():
        if value is not None:
            setattr(getattr(config, section), field, value)

    if args.address is not None:
        config.server.host, config.server.port = parse_address(args.address)
    return config


def build_config(args: argparse.Namespace) -> S3WWWConfig:
    """Layer defaults, config file, environment and CLI flags, then validate.

    Raises:
        ConfigError: For any fatal configuration problem.
    """
    try:
        config = load_config(args.config) if args.config is not None else S3WWWConfig()
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {args.config}") from exc
    except Exception as exc:
        raise ConfigError(f"Failed to load config: {exc}") from exc

    apply_env(config)
    try:
        apply_args(config, args)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return validate_config(config)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the s3www CLI.

    Builds the configuration, exits with status 1 on a fatal configuration
    error, and otherwise serves the bucket with uvicorn (HTTPS when a TLS
    cert/key pair is configured).

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("s3www")

    try:
        config = build_config(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    configure_logging(
        level=config.server.log_level,
        fmt=config.server.log_format,
    )

    tls = bool(config.server.tls_cert and config.server.tls_key)
    logger.info(
        "Started listening on %s://%s:%d",
        "https" if tls else "http",
        config.server.host,
        config.server.port,
    )

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        access_log=False,
        server_header=False,
        ssl_certfile=config.server.tls_cert or None,
        ssl_keyfile=config.server.tls_key or None,
    )


if __name__ == "__main__":
    main()
