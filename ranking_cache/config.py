"""Configuration handling for the ranking cache and its document store."""

from __future__ import annotations

from dataclasses import dataclass, field
from os import environ
from typing import TypeVar
from urllib.parse import urlparse

from ranking_cache import __version__
from ranking_cache.errors import InvalidConfig

DEFAULT_MAX_ENTRIES = 100
DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_SWEEP_INTERVAL_MS = DEFAULT_TTL_MS // 5
DEFAULT_RANKINGS_MAX_ENTRIES = 50

DEFAULT_STORE_BASE_URL = 'https://firestore.googleapis.com/v1'
DEFAULT_DATABASE = '(default)'
DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_MAX_DELAY = 30.0
DEFAULT_PAGE_SIZE = 300


@dataclass(slots=True)
class CacheConfig:
    """Sizing and expiry settings for a single query cache.

    All three values are integers in their own units: ``max_entries`` counts
    entries, ``ttl_ms`` and ``sweep_interval_ms`` are milliseconds. The sweep
    interval is independent of the TTL; the default sweeps five times per TTL.

    Example:
        >>> config = CacheConfig(max_entries=2, ttl_ms=1000, sweep_interval_ms=200)
        >>> config.validate()
        CacheConfig(max_entries=2, ttl_ms=1000, sweep_interval_ms=200)
    """

    max_entries: int = DEFAULT_MAX_ENTRIES
    ttl_ms: int = DEFAULT_TTL_MS
    sweep_interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS

    @classmethod
    def from_env(cls, prefix: str, *, defaults: CacheConfig | None = None) -> CacheConfig:
        """Create a cache configuration from ``<prefix>``-scoped environment variables.

        Reads ``<prefix>MAX_ENTRIES``, ``<prefix>TTL_MS`` and
        ``<prefix>SWEEP_INTERVAL_MS``. Missing, unparsable or non-positive
        values fall back to ``defaults`` (or the module defaults).

        Raises:
            InvalidConfig: If the resulting configuration is invalid.
        """

        base = defaults or cls()
        return cls(
            max_entries=_read_number(f'{prefix}MAX_ENTRIES', int, base.max_entries, minimum=1),
            ttl_ms=_read_number(f'{prefix}TTL_MS', int, base.ttl_ms, minimum=1),
            sweep_interval_ms=_read_number(
                f'{prefix}SWEEP_INTERVAL_MS', int, base.sweep_interval_ms, minimum=1
            ),
        ).validate()

    def validate(self) -> CacheConfig:
        """Check that every setting is a positive integer.

        Returns:
            Self for method chaining.

        Raises:
            InvalidConfig: If any value is not a positive integer.
        """
        for name in ('max_entries', 'ttl_ms', 'sweep_interval_ms'):
            value = getattr(self, name)
            # bool is an int subclass but never a meaningful size or duration
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfig(f'{name} must be an integer: {value!r}')
            if value <= 0:
                raise InvalidConfig(f'{name} must be positive: {value}')
        return self


@dataclass(slots=True)
class StoreConfig:
    """Connection settings for the remote document store.

    Environment Variables:
        RANKING_STORE_BASE_URL: REST endpoint root (default: Firestore v1)
        RANKING_STORE_PROJECT_ID: Project holding the database (required for real use)
        RANKING_STORE_DATABASE: Database id (default: (default))
        RANKING_STORE_AUTH_TOKEN: Optional bearer token
        RANKING_STORE_USER_AGENT: Custom User-Agent header
        RANKING_STORE_TIMEOUT: Request timeout in seconds (default: 20.0)
        RANKING_STORE_MAX_RETRIES: Maximum retry attempts (default: 2)
        RANKING_STORE_RETRY_BASE_DELAY: Base retry delay in seconds (default: 1.0)
        RANKING_STORE_RETRY_MAX_DELAY: Maximum retry delay in seconds (default: 30.0)
        RANKING_STORE_PAGE_SIZE: Documents per page when listing (default: 300)
    """

    base_url: str = DEFAULT_STORE_BASE_URL
    project_id: str = ''
    database: str = DEFAULT_DATABASE
    auth_token: str | None = None
    user_agent: str = f'ranking-cache/{__version__}'
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_env(cls) -> StoreConfig:
        base_url = environ.get('RANKING_STORE_BASE_URL', DEFAULT_STORE_BASE_URL).rstrip('/')
        user_agent = environ.get('RANKING_STORE_USER_AGENT') or f'ranking-cache/{__version__}'

        return cls(
            base_url=base_url,
            project_id=environ.get('RANKING_STORE_PROJECT_ID', ''),
            database=environ.get('RANKING_STORE_DATABASE') or DEFAULT_DATABASE,
            auth_token=environ.get('RANKING_STORE_AUTH_TOKEN'),
            user_agent=user_agent,
            timeout=_read_number('RANKING_STORE_TIMEOUT', float, DEFAULT_TIMEOUT_SECONDS),
            max_retries=_read_number(
                'RANKING_STORE_MAX_RETRIES', int, DEFAULT_MAX_RETRIES, minimum=0
            ),
            retry_base_delay=_read_number(
                'RANKING_STORE_RETRY_BASE_DELAY', float, DEFAULT_RETRY_BASE_DELAY, minimum=0.1
            ),
            retry_max_delay=_read_number(
                'RANKING_STORE_RETRY_MAX_DELAY', float, DEFAULT_RETRY_MAX_DELAY, minimum=1.0
            ),
            page_size=_read_number('RANKING_STORE_PAGE_SIZE', int, DEFAULT_PAGE_SIZE, minimum=1),
        ).validate()

    def validate(self) -> StoreConfig:
        """Validate connection settings.

        Returns:
            Self for method chaining.

        Raises:
            InvalidConfig: If any value is invalid with a descriptive message.
        """
        parsed = urlparse(self.base_url)
        if not parsed.scheme or not parsed.netloc:
            raise InvalidConfig(f'Invalid base_url: {self.base_url}')
        if parsed.scheme not in ('http', 'https'):
            raise InvalidConfig(f'base_url must use http or https scheme: {self.base_url}')

        if self.timeout <= 0:
            raise InvalidConfig(f'timeout must be positive: {self.timeout}')
        if self.max_retries < 0:
            raise InvalidConfig(f'max_retries must be non-negative: {self.max_retries}')
        if self.retry_base_delay <= 0:
            raise InvalidConfig(f'retry_base_delay must be positive: {self.retry_base_delay}')
        if self.retry_max_delay <= 0:
            raise InvalidConfig(f'retry_max_delay must be positive: {self.retry_max_delay}')
        if self.retry_base_delay > self.retry_max_delay:
            raise InvalidConfig(
                f'retry_base_delay ({self.retry_base_delay}) must not exceed '
                f'retry_max_delay ({self.retry_max_delay})'
            )
        if self.page_size < 1:
            raise InvalidConfig(f'page_size must be at least 1: {self.page_size}')

        return self


@dataclass(slots=True)
class Config:
    """Top-level settings: one store and the two caches placed in front of it.

    Example:
        >>> config = Config.from_env()
        >>> config.rankings_cache.max_entries
        50
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    rankings_cache: CacheConfig = field(
        default_factory=lambda: CacheConfig(max_entries=DEFAULT_RANKINGS_MAX_ENTRIES)
    )
    profile_cache: CacheConfig = field(default_factory=CacheConfig)

    @classmethod
    def from_env(cls) -> Config:
        return cls(
            store=StoreConfig.from_env(),
            rankings_cache=CacheConfig.from_env(
                'RANKING_CACHE_',
                defaults=CacheConfig(max_entries=DEFAULT_RANKINGS_MAX_ENTRIES),
            ),
            profile_cache=CacheConfig.from_env('PROFILE_CACHE_'),
        )


T = TypeVar('T', bound=float | int)


def _read_number(
    name: str,
    cast: type[T],
    default: T,
    *,
    minimum: T | None = None,
) -> T:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value
