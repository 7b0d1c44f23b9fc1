"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from pushwatch.config import (
    ConfigError,
    EnrichmentConfig,
    FeedClientConfig,
    ObjectStorageBackend,
    ObjectStorageConfig,
    SchedulerConfig,
    env_flag,
    env_int,
)

_VARIABLES = (
    "PUSHWATCH_FEED_URL",
    "PUSHWATCH_API_BASE_URL",
    "PUSHWATCH_GITHUB_TOKEN",
    "PUSHWATCH_MAX_RETRIES",
    "PUSHWATCH_CACHE_TTL_HOURS",
    "PUSHWATCH_ENRICHMENT_BATCH_SIZE",
    "PUSHWATCH_ALLOW_STALE_FALLBACK",
    "PUSHWATCH_OBJECT_STORAGE_ENABLED",
    "PUSHWATCH_OBJECT_STORAGE_PATH",
    "PUSHWATCH_OBJECT_STORAGE_BACKEND",
    "PUSHWATCH_S3_BUCKET",
    "PUSHWATCH_S3_ENDPOINT",
    "PUSHWATCH_S3_FORCE_PATH_STYLE",
    "PUSHWATCH_DATABASE_URL",
    "PUSHWATCH_INGESTION_INTERVAL_S",
    "PUSHWATCH_ENRICHMENT_INTERVAL_S",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARIABLES:
        monkeypatch.delenv(name, raising=False)


def test_feed_client_defaults() -> None:
    """An empty environment yields the documented defaults."""
    config = FeedClientConfig.from_env()

    assert config.feed_url == "https://api.github.com/events"
    assert config.api_base_url == "https://api.github.com"
    assert config.token is None
    assert config.max_retries == 3


def test_feed_client_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Variables override defaults and the API base loses its trailing slash."""
    monkeypatch.setenv("PUSHWATCH_API_BASE_URL", "https://ghe.example/api/v3/")
    monkeypatch.setenv("PUSHWATCH_GITHUB_TOKEN", " secret ")
    monkeypatch.setenv("PUSHWATCH_MAX_RETRIES", "0")

    config = FeedClientConfig.from_env()

    assert config.api_base_url == "https://ghe.example/api/v3"
    assert config.token == "secret"
    assert config.max_retries == 0


def test_enrichment_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """TTL hours and flags are parsed into their typed forms."""
    monkeypatch.setenv("PUSHWATCH_CACHE_TTL_HOURS", "1.5")
    monkeypatch.setenv("PUSHWATCH_ENRICHMENT_BATCH_SIZE", "10")
    monkeypatch.setenv("PUSHWATCH_ALLOW_STALE_FALLBACK", "yes")

    config = EnrichmentConfig.from_env()

    assert config.cache_ttl == dt.timedelta(minutes=90)
    assert config.batch_size == 10
    assert config.allow_stale_fallback is True


def test_object_storage_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Object storage is disabled unless switched on."""
    assert ObjectStorageConfig.from_env().enabled is False

    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_ENABLED", "true")
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_PATH", "/srv/objects")
    config = ObjectStorageConfig.from_env()

    assert config.enabled is True
    assert config.base_path == Path("/srv/objects")


def test_scheduler_requires_database_url() -> None:
    """The scheduler cannot start without a database URL."""
    with pytest.raises(ConfigError, match="PUSHWATCH_DATABASE_URL"):
        SchedulerConfig.from_env()


def test_scheduler_prefers_explicit_database_url(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """An explicit URL wins over the environment."""
    monkeypatch.setenv("PUSHWATCH_DATABASE_URL", "sqlite+aiosqlite:///env.db")
    monkeypatch.setenv("PUSHWATCH_INGESTION_INTERVAL_S", "5")

    config = SchedulerConfig.from_env("sqlite+aiosqlite:///cli.db")

    assert config.database_url == "sqlite+aiosqlite:///cli.db"
    assert config.ingestion_interval == dt.timedelta(seconds=5)
    assert config.enrichment_interval == dt.timedelta(seconds=120)


@pytest.mark.parametrize(
    ("raw", "message"),
    [("ten", "must be numeric"), ("-1", "must be positive"), ("0", "must be positive")],
)
def test_env_int_rejects_bad_values(
    monkeypatch: pytest.MonkeyPatch, raw: str, message: str
) -> None:
    """Non-numeric and non-positive integers are configuration errors."""
    monkeypatch.setenv("PUSHWATCH_ENRICHMENT_BATCH_SIZE", raw)

    with pytest.raises(ConfigError, match=message):
        env_int("PUSHWATCH_ENRICHMENT_BATCH_SIZE", 50)


def test_env_flag_rejects_unknown_spelling(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only the usual boolean spellings are accepted."""
    monkeypatch.setenv("PUSHWATCH_ALLOW_STALE_FALLBACK", "maybe")

    with pytest.raises(ConfigError, match="boolean flag"):
        env_flag("PUSHWATCH_ALLOW_STALE_FALLBACK", default=False)


def test_object_storage_s3_backend_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """The S3 backend reads its bucket and endpoint settings."""
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_ENABLED", "1")
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_BACKEND", "S3")
    monkeypatch.setenv("PUSHWATCH_S3_BUCKET", "pushwatch-events")
    monkeypatch.setenv("PUSHWATCH_S3_ENDPOINT", "http://localhost:4566")
    monkeypatch.setenv("PUSHWATCH_S3_FORCE_PATH_STYLE", "true")

    config = ObjectStorageConfig.from_env()

    assert config.backend is ObjectStorageBackend.S3
    assert config.bucket == "pushwatch-events"
    assert config.endpoint_url == "http://localhost:4566"
    assert config.force_path_style is True


def test_enabled_s3_backend_requires_bucket(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 storage cannot be switched on without a bucket."""
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_ENABLED", "1")
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_BACKEND", "s3")

    with pytest.raises(ConfigError, match="PUSHWATCH_S3_BUCKET"):
        ObjectStorageConfig.from_env()


def test_unknown_object_storage_backend_is_rejected(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Only the shipped backends are accepted."""
    monkeypatch.setenv("PUSHWATCH_OBJECT_STORAGE_BACKEND", "gcs")

    with pytest.raises(ConfigError, match="filesystem, s3"):
        ObjectStorageConfig.from_env()
