"""Content fingerprints and fingerprint-keyed memoization for filter options."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Generic, Iterable, Mapping, TypeVar

from ranking_cache.models import FilterOption, FilterOptions

logger = logging.getLogger(__name__)

T = TypeVar('T')

GLOBAL_LEAGUE_OPTION = FilterOption(value='global', label='Global Rankings')
ALL_SEASONS_OPTION = FilterOption(value='all', label='All Seasons')


def _identity(item: Any) -> tuple[str, str]:
    if isinstance(item, Mapping):
        return str(item.get('id', '')), str(item.get('name', ''))
    return str(getattr(item, 'id', '')), str(getattr(item, 'name', ''))


def filter_fingerprint(*collections: Iterable[Any]) -> str:
    """Stable string built from the ``id``/``name`` pairs of each collection.

    Items may be mappings or objects exposing ``id`` and ``name`` attributes.
    Two collections with the same pairs in the same order produce the same
    fingerprint regardless of object identity. JSON encoding keeps pairs
    unambiguous when ids or names contain separator characters.
    """
    pairs = [[list(_identity(item)) for item in collection] for collection in collections]
    return json.dumps(pairs, ensure_ascii=False, separators=(',', ':'))


class FingerprintMemo(Generic[T]):
    """Remembers the last result of ``compute`` keyed by the inputs' fingerprint.

    A call with new instances of logically equal collections returns the
    remembered result without running ``compute`` again.
    """

    def __init__(self, compute: Callable[..., T]) -> None:
        self._compute = compute
        self._fingerprint: str | None = None
        self._result: T | None = None
        self.computations = 0

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    def __call__(self, *collections: Iterable[Any]) -> T:
        # materialize once so one-shot iterables feed both the fingerprint and compute
        materialized = [list(collection) for collection in collections]
        fingerprint = filter_fingerprint(*materialized)
        if fingerprint != self._fingerprint:
            self._result = self._compute(*materialized)
            self._fingerprint = fingerprint
            self.computations += 1
            logger.debug('Recomputed derived options (%d so far)', self.computations)
        return self._result  # type: ignore[return-value]

    def reset(self) -> None:
        self._fingerprint = None
        self._result = None


def build_filter_options(leagues: Iterable[Any], seasons: Iterable[Any]) -> FilterOptions:
    """Select options for the league and season pickers, each led by its catch-all entry."""
    league_options = [GLOBAL_LEAGUE_OPTION]
    league_options.extend(_option(item) for item in leagues)
    season_options = [ALL_SEASONS_OPTION]
    season_options.extend(_option(item) for item in seasons)
    return FilterOptions(leagues=tuple(league_options), seasons=tuple(season_options))


def _option(item: Any) -> FilterOption:
    value, label = _identity(item)
    return FilterOption(value=value, label=label)
