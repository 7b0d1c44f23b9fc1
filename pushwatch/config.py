"""Environment-driven configuration for pushwatch services.

Each service takes a small frozen dataclass describing its knobs. The
``from_env`` constructors read ``PUSHWATCH_*`` variables, fall back to the
defaults declared on the dataclass, and raise :class:`ConfigError` for values
that cannot be parsed.

Usage
-----
>>> import os
>>> os.environ["PUSHWATCH_CACHE_TTL_HOURS"] = "12"
>>> EnrichmentConfig.from_env().cache_ttl
datetime.timedelta(seconds=43200)

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import enum
import os
import typing as typ
from pathlib import Path

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_DEFAULT_FEED_URL = "https://api.github.com/events"
_DEFAULT_API_BASE_URL = "https://api.github.com"
_DEFAULT_USER_AGENT = "pushwatch/0.1"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""

    @classmethod
    def not_a_number(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a value that does not parse as a number."""
        return cls(f"{env_var} must be numeric, got: {raw!r}")

    @classmethod
    def not_positive(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a value that must be strictly positive."""
        return cls(f"{env_var} must be positive, got: {raw!r}")

    @classmethod
    def not_a_flag(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a value that is not a recognised boolean."""
        return cls(f"{env_var} must be a boolean flag, got: {raw!r}")

    @classmethod
    def missing(cls, env_var: str) -> ConfigError:
        """Return an error for a required variable that is unset."""
        return cls(f"{env_var} is required")

    @classmethod
    def not_a_choice(
        cls, env_var: str, raw: str, choices: cabc.Iterable[str]
    ) -> ConfigError:
        """Return an error for a value outside a fixed set of choices."""
        allowed = ", ".join(choices)
        return cls(f"{env_var} must be one of {allowed}, got: {raw!r}")


def _raw(env_var: str) -> str | None:
    value = os.environ.get(env_var, "").strip()
    return value or None


def env_str(env_var: str, default: str) -> str:
    """Return a stripped string variable or ``default`` when blank."""
    return _raw(env_var) or default


def env_int(env_var: str, default: int, *, allow_zero: bool = False) -> int:
    """Return a positive integer variable, or ``default`` when unset."""
    raw = _raw(env_var)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError.not_a_number(env_var, raw) from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError.not_positive(env_var, raw)
    return value


def env_float(env_var: str, default: float) -> float:
    """Return a positive float variable, or ``default`` when unset."""
    raw = _raw(env_var)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError.not_a_number(env_var, raw) from exc
    if value <= 0:
        raise ConfigError.not_positive(env_var, raw)
    return value


def env_flag(env_var: str, *, default: bool) -> bool:
    """Return a boolean variable accepting the usual spellings."""
    raw = _raw(env_var)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError.not_a_flag(env_var, raw)


@dc.dataclass(frozen=True, slots=True)
class FeedClientConfig:
    """HTTP settings for the events feed and the enrichment endpoints.

    Attributes
    ----------
    feed_url
        Events endpoint polled by ingestion.
    api_base_url
        Base URL used to build ``/users/{login}`` and
        ``/repositories/{id}`` enrichment URLs.
    token
        Optional bearer token. The feed is public, so pushwatch runs
        unauthenticated unless one is supplied.
    timeout_s
        Connect/read timeout handed to ``httpx``.
    max_retries
        Retries after the first attempt for retryable failures. The default
        of 3 allows up to four requests per fetch, separated by the three
        backoff delays of 1, 4 and 9 seconds.
    backoff_base_s
        Multiplier of the polynomial backoff schedule.
    backoff_exponent
        Exponent of the polynomial backoff schedule.
    max_budget_wait_s
        Longest sleep a waiting caller accepts for the rate-limit reset.

    """

    feed_url: str = _DEFAULT_FEED_URL
    api_base_url: str = _DEFAULT_API_BASE_URL
    token: str | None = None
    user_agent: str = _DEFAULT_USER_AGENT
    timeout_s: float = 20.0
    max_retries: int = 3
    backoff_base_s: float = 1.0
    backoff_exponent: int = 2
    max_budget_wait_s: float = 60.0

    @classmethod
    def from_env(cls) -> FeedClientConfig:
        """Build configuration from ``PUSHWATCH_*`` variables."""
        return cls(
            feed_url=env_str("PUSHWATCH_FEED_URL", _DEFAULT_FEED_URL),
            api_base_url=env_str(
                "PUSHWATCH_API_BASE_URL", _DEFAULT_API_BASE_URL
            ).rstrip("/"),
            token=_raw("PUSHWATCH_GITHUB_TOKEN"),
            user_agent=env_str("PUSHWATCH_USER_AGENT", _DEFAULT_USER_AGENT),
            timeout_s=env_float("PUSHWATCH_HTTP_TIMEOUT_S", 20.0),
            max_retries=env_int("PUSHWATCH_MAX_RETRIES", 3, allow_zero=True),
            backoff_base_s=env_float("PUSHWATCH_BACKOFF_BASE_S", 1.0),
            backoff_exponent=env_int("PUSHWATCH_BACKOFF_EXPONENT", 2),
            max_budget_wait_s=env_float("PUSHWATCH_MAX_BUDGET_WAIT_S", 60.0),
        )


@dc.dataclass(frozen=True, slots=True)
class EnrichmentConfig:
    """Knobs for the enrichment cache and batch worker."""

    cache_ttl: dt.timedelta = dt.timedelta(hours=24)
    batch_size: int = 50
    stale_after: dt.timedelta = dt.timedelta(minutes=15)
    max_concurrency: int = 1
    allow_stale_fallback: bool = False

    @classmethod
    def from_env(cls) -> EnrichmentConfig:
        """Build configuration from ``PUSHWATCH_*`` variables."""
        return cls(
            cache_ttl=dt.timedelta(hours=env_float("PUSHWATCH_CACHE_TTL_HOURS", 24.0)),
            batch_size=env_int("PUSHWATCH_ENRICHMENT_BATCH_SIZE", 50),
            stale_after=dt.timedelta(
                minutes=env_float("PUSHWATCH_STALE_IN_PROGRESS_MINUTES", 15.0)
            ),
            max_concurrency=env_int("PUSHWATCH_ENRICHMENT_CONCURRENCY", 1),
            allow_stale_fallback=env_flag(
                "PUSHWATCH_ALLOW_STALE_FALLBACK", default=False
            ),
        )


class ObjectStorageBackend(enum.StrEnum):
    """Adapters available for external raw payload storage."""

    FILESYSTEM = "filesystem"
    S3 = "s3"


@dc.dataclass(frozen=True, slots=True)
class ObjectStorageConfig:
    """Feature flag, backend and location for external raw payload storage.

    Attributes
    ----------
    enabled
        Offload raw payloads instead of storing them inline.
    backend
        ``filesystem`` writes beneath ``base_path``; ``s3`` writes to
        ``bucket``.
    endpoint_url
        Custom S3 endpoint, for example LocalStack or MinIO.
    force_path_style
        Address buckets as ``endpoint/bucket/key`` rather than by virtual
        host, which most S3-compatible services require.

    """

    enabled: bool = False
    backend: ObjectStorageBackend = ObjectStorageBackend.FILESYSTEM
    base_path: Path = Path("var/objects")
    bucket: str | None = None
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    force_path_style: bool = False

    @classmethod
    def from_env(cls) -> ObjectStorageConfig:
        """Build configuration from ``PUSHWATCH_*`` variables.

        Raises
        ------
        ConfigError
            If the backend is unknown, or S3 storage is enabled without
            ``PUSHWATCH_S3_BUCKET``.

        """
        raw_backend = env_str(
            "PUSHWATCH_OBJECT_STORAGE_BACKEND", ObjectStorageBackend.FILESYSTEM
        ).lower()
        try:
            backend = ObjectStorageBackend(raw_backend)
        except ValueError as exc:
            raise ConfigError.not_a_choice(
                "PUSHWATCH_OBJECT_STORAGE_BACKEND",
                raw_backend,
                [member.value for member in ObjectStorageBackend],
            ) from exc

        config = cls(
            enabled=env_flag("PUSHWATCH_OBJECT_STORAGE_ENABLED", default=False),
            backend=backend,
            base_path=Path(env_str("PUSHWATCH_OBJECT_STORAGE_PATH", "var/objects")),
            bucket=_raw("PUSHWATCH_S3_BUCKET"),
            region=_raw("PUSHWATCH_S3_REGION"),
            endpoint_url=_raw("PUSHWATCH_S3_ENDPOINT"),
            access_key_id=_raw("PUSHWATCH_S3_ACCESS_KEY_ID"),
            secret_access_key=_raw("PUSHWATCH_S3_SECRET_ACCESS_KEY"),
            force_path_style=env_flag("PUSHWATCH_S3_FORCE_PATH_STYLE", default=False),
        )
        if config.enabled and backend is ObjectStorageBackend.S3 and not config.bucket:
            raise ConfigError.missing("PUSHWATCH_S3_BUCKET")
        return config


@dc.dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """Cadences used by the cooperative polling scheduler."""

    database_url: str
    ingestion_interval: dt.timedelta = dt.timedelta(seconds=60)
    enrichment_interval: dt.timedelta = dt.timedelta(seconds=120)

    @classmethod
    def from_env(cls, database_url: str | None = None) -> SchedulerConfig:
        """Build configuration; the database URL is mandatory.

        An explicit ``database_url`` takes precedence over
        ``PUSHWATCH_DATABASE_URL``.
        """
        resolved_url = database_url or _raw("PUSHWATCH_DATABASE_URL")
        if resolved_url is None:
            raise ConfigError.missing("PUSHWATCH_DATABASE_URL")
        return cls(
            database_url=resolved_url,
            ingestion_interval=dt.timedelta(
                seconds=env_float("PUSHWATCH_INGESTION_INTERVAL_S", 60.0)
            ),
            enrichment_interval=dt.timedelta(
                seconds=env_float("PUSHWATCH_ENRICHMENT_INTERVAL_S", 120.0)
            ),
        )


__all__ = [
    "ConfigError",
    "EnrichmentConfig",
    "FeedClientConfig",
    "ObjectStorageBackend",
    "ObjectStorageConfig",
    "SchedulerConfig",
    "env_flag",
    "env_float",
    "env_int",
    "env_str",
]
