"""Custom exception hierarchy for the ranking cache and its document store."""

from __future__ import annotations


class RankingCacheError(Exception):
    """Base exception for ranking cache failures."""


class InvalidConfig(RankingCacheError, ValueError):
    """Raised when a cache or store is configured with invalid values."""


class ReentrantMutationDetected(RankingCacheError, RuntimeError):
    """Raised when a fetch function calls back into the cache for its own key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'fetch for {key!r} re-entered the cache for the same key')


class FetchFailed(RankingCacheError):
    """Base exception for remote document store failures."""


class DocumentNotFound(FetchFailed):
    """Raised when the requested document or collection does not exist."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'document not found: {key}')


class StoreAuthError(FetchFailed):
    """Raised when the store rejects credentials or throttles the caller."""


class StoreTransportError(FetchFailed):
    """Raised when network or protocol-level failures occur."""

    def __init__(self, original: Exception) -> None:
        self.original = original
        super().__init__(str(original))
