"""Tests for s3www configuration loading."""

import logging
import tempfile
from pathlib import Path

import pytest
import yaml

from s3www.config import (
    S3Config,
    S3WWWConfig,
    apply_env,
    load_config,
    parse_address,
    parse_duration,
    validate_config,
)
from s3www.errors import ConfigError


def _write_yaml(data) -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
        return Path(f.name)


def _valid_config(**s3) -> S3WWWConfig:
    return S3WWWConfig(s3=S3Config(bucket="site", **s3))


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_example_config(self):
        """Loading the example config file populates all fields."""
        config = load_config(Path(__file__).resolve().parent.parent.parent / "s3www.example.yaml")
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 8080
        assert config.server.log_format == "text"
        assert config.s3.backend == "s3"
        assert config.s3.endpoint == "https://s3.amazonaws.com"
        assert config.s3.bucket == "mysite"
        assert config.cache.ttl == "5m"
        assert config.cache.cleanup_interval == "10m"
        assert config.observability.metrics is True

    def test_load_minimal_config(self):
        """Loading an empty YAML uses defaults for all fields."""
        config = load_config(_write_yaml({}))
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 8080
        assert config.s3.bucket == ""
        assert config.cache.ttl == "5m"

    def test_host_and_port(self):
        config = load_config(_write_yaml({"server": {"host": "0.0.0.0", "port": 9010}}))
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 9010

    def test_address_overrides_host_and_port(self):
        config = load_config(_write_yaml({"server": {"address": "0.0.0.0:80", "port": 1}}))
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 80

    def test_nested_tls(self):
        """server.tls.cert and server.tls.key are flattened."""
        config = load_config(_write_yaml({"server": {"tls": {"cert": "c.pem", "key": "k.pem"}}}))
        assert config.server.tls_cert == "c.pem"
        assert config.server.tls_key == "k.pem"

    def test_numeric_cache_durations_are_seconds(self):
        config = load_config(_write_yaml({"cache": {"ttl": 30, "cleanup_interval": "1h"}}))
        assert config.cache.ttl == "30s"
        assert config.cache.cleanup_interval == "1h"

    def test_unknown_s3_keys_ignored(self):
        config = load_config(_write_yaml({"s3": {"bucket": "b", "colour": "blue"}}))
        assert config.s3.bucket == "b"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestParseDuration:
    @pytest.mark.parametrize(
        "value, seconds",
        [
            ("0", 0.0),
            ("5m", 300.0),
            ("300ms", 0.3),
            ("1.5h", 5400.0),
            ("2h45m", 9900.0),
            ("10s", 10.0),
            ("-1s", -1.0),
        ],
    )
    def test_valid(self, value, seconds):
        assert parse_duration(value) == pytest.approx(seconds)

    @pytest.mark.parametrize("value", ["", "5", "five minutes", "1d", "m"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestParseAddress:
    def test_host_port(self):
        assert parse_address("127.0.0.1:8080") == ("127.0.0.1", 8080)

    def test_empty_host_binds_all(self):
        assert parse_address(":9000") == ("0.0.0.0", 9000)

    def test_ipv6(self):
        assert parse_address("[::1]:8080") == ("::1", 8080)

    @pytest.mark.parametrize("value", ["localhost", "host:", "host:http"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_address(value)


class TestApplyEnv:
    """Tests for S3WWW_* environment overrides."""

    def test_strings(self):
        config = apply_env(
            S3WWWConfig(),
            {
                "S3WWW_ENDPOINT": "http://minio:9000",
                "S3WWW_BUCKET": "site",
                "S3WWW_ACCESS_KEY": "AKID",
                "S3WWW_SECRET_KEY": "SECRET",
                "S3WWW_CACHE_TIME": "1m",
                "S3WWW_SSL_CERT": "c.pem",
                "S3WWW_SSL_KEY": "k.pem",
            },
        )
        assert config.s3.endpoint == "http://minio:9000"
        assert config.s3.bucket == "site"
        assert config.s3.access_key == "AKID"
        assert config.s3.secret_key == "SECRET"
        assert config.cache.ttl == "1m"
        assert config.server.tls_cert == "c.pem"
        assert config.server.tls_key == "k.pem"

    def test_address(self):
        config = apply_env(S3WWWConfig(), {"S3WWW_ADDRESS": "0.0.0.0:80"})
        assert (config.server.host, config.server.port) == ("0.0.0.0", 80)

    def test_bools(self):
        config = apply_env(S3WWWConfig(), {"S3WWW_PATH_STYLE": "true", "S3WWW_METRICS": "0"})
        assert config.s3.use_path_style is True
        assert config.observability.metrics is False

    def test_bad_bool_is_logged_and_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="s3www.config"):
            config = apply_env(S3WWWConfig(), {"S3WWW_PATH_STYLE": "maybe"})
        assert config.s3.use_path_style is False
        assert "S3WWW_PATH_STYLE" in caplog.text

    def test_unset_vars_keep_values(self):
        config = S3WWWConfig(s3=S3Config(bucket="from-file"))
        apply_env(config, {})
        assert config.s3.bucket == "from-file"


class TestValidateConfig:
    """Tests for validate_config()."""

    def test_valid(self):
        config = _valid_config(endpoint="https://s3.amazonaws.com")
        assert validate_config(config) is config

    @pytest.mark.parametrize("bucket", ["", "   "])
    def test_empty_bucket(self, bucket):
        with pytest.raises(ConfigError, match="Bucket name cannot be empty"):
            validate_config(S3WWWConfig(s3=S3Config(bucket=bucket)))

    @pytest.mark.parametrize(
        "endpoint", ["minio:9000", "ftp://host", "http://", "http://host:port"]
    )
    def test_malformed_endpoint(self, endpoint):
        with pytest.raises(ConfigError, match="Malformed endpoint"):
            validate_config(_valid_config(endpoint=endpoint))

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            validate_config(_valid_config(backend="gcs"))

    def test_bad_cache_duration(self):
        config = _valid_config()
        config.cache.ttl = "forever"
        with pytest.raises(ConfigError, match="ttl"):
            validate_config(config)

    def test_negative_cache_duration(self):
        config = _valid_config()
        config.cache.cleanup_interval = "-1m"
        with pytest.raises(ConfigError, match="negative"):
            validate_config(config)

    def test_key_files_replace_inline_keys(self, tmp_path):
        access = tmp_path / "access"
        secret = tmp_path / "secret"
        access.write_text("AKID\n")
        secret.write_text("  SECRET  \n")
        config = _valid_config(
            access_key="inline",
            access_key_file=str(access),
            secret_key_file=str(secret),
        )
        validate_config(config)
        assert config.s3.access_key == "AKID"
        assert config.s3.secret_key == "SECRET"

    def test_unreadable_key_file(self, tmp_path):
        config = _valid_config(secret_key_file=str(tmp_path / "missing"))
        with pytest.raises(ConfigError, match="Failed to read secret key file"):
            validate_config(config)

    def test_lone_tls_cert(self):
        config = _valid_config()
        config.server.tls_cert = "c.pem"
        with pytest.raises(ConfigError, match="TLS"):
            validate_config(config)
