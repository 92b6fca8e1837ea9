"""In-process caching layer for league ranking and user profile lookups."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - fallback only triggers when metadata missing
    __version__: str = version('ranking-cache')
except PackageNotFoundError:  # pragma: no cover
    __version__ = '0.1.0'

from .config import CacheConfig, Config, StoreConfig  # noqa: E402
from .errors import (  # noqa: E402
    DocumentNotFound,
    FetchFailed,
    InvalidConfig,
    RankingCacheError,
    ReentrantMutationDetected,
    StoreAuthError,
    StoreTransportError,
)
from .facade import CacheEvent, CacheEventKind, CacheStats, QueryCache  # noqa: E402
from .fingerprint import FingerprintMemo, build_filter_options, filter_fingerprint  # noqa: E402
from .rankings import RankingsService  # noqa: E402
from .store import DocumentStoreClient  # noqa: E402

__all__ = [
    'CacheConfig',
    'CacheEvent',
    'CacheEventKind',
    'CacheStats',
    'Config',
    'DocumentNotFound',
    'DocumentStoreClient',
    'FetchFailed',
    'FingerprintMemo',
    'InvalidConfig',
    'QueryCache',
    'RankingCacheError',
    'RankingsService',
    'ReentrantMutationDetected',
    'StoreAuthError',
    'StoreConfig',
    'StoreTransportError',
    'build_filter_options',
    'filter_fingerprint',
    '__version__',
]
