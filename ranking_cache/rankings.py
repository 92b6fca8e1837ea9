"""League ranking and user profile queries served through query caches."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Protocol

from ranking_cache.cache import Clock
from ranking_cache.config import Config
from ranking_cache.facade import QueryCache
from ranking_cache.fingerprint import FingerprintMemo, build_filter_options
from ranking_cache.models import FilterOptions, League, Season, UserProfile

logger = logging.getLogger(__name__)

LEAGUES_KEY = 'league:*'
SEASONS_KEY = 'season:*'


class DocumentStore(Protocol):
    """Anything that can fetch a document or collection by cache key."""

    def fetch(self, key: str) -> Awaitable[Any]:
        ...


def league_key(league_id: str) -> str:
    return f'league:{league_id}'


def user_key(user_id: str) -> str:
    return f'user:{user_id}'


class RankingsService:
    """Query layer for the rankings pages.

    League and season data share one cache; user profiles get their own so
    a burst of profile lookups cannot push rankings out. Filter options are
    derived from the league and season lists and only rebuilt when their
    ids or names change.

    Example:
        >>> store = DocumentStoreClient(config.store)
        >>> async with RankingsService(store, config) as rankings:
        ...     leagues, seasons = await rankings.overview()
        ...     options = rankings.filter_options(leagues, seasons)
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Config | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        config = config or Config()
        self.rankings = QueryCache(store.fetch, config.rankings_cache, clock=clock, name='rankings')
        self.profiles = QueryCache(store.fetch, config.profile_cache, clock=clock, name='profiles')
        self._filter_options = FingerprintMemo(build_filter_options)

    async def leagues_with_rankings(self, *, force_refresh: bool = False) -> list[League]:
        documents = await self.rankings.get(LEAGUES_KEY, force_refresh=force_refresh)
        return [League.model_validate(doc) for doc in documents]

    async def league(self, league_id: str, *, force_refresh: bool = False) -> League:
        document = await self.rankings.get(league_key(league_id), force_refresh=force_refresh)
        return League.model_validate(document)

    async def global_seasons(self, *, force_refresh: bool = False) -> list[Season]:
        documents = await self.rankings.get(SEASONS_KEY, force_refresh=force_refresh)
        seasons = [Season.model_validate(doc) for doc in documents]
        return [season for season in seasons if season.is_global]

    async def user_profile(self, user_id: str, *, force_refresh: bool = False) -> UserProfile:
        document = await self.profiles.get(user_key(user_id), force_refresh=force_refresh)
        return UserProfile.model_validate(document)

    async def overview(self, *, force_refresh: bool = False) -> tuple[list[League], list[Season]]:
        """Leagues with rankings and global seasons, fetched concurrently."""
        leagues, seasons = await asyncio.gather(
            self.leagues_with_rankings(force_refresh=force_refresh),
            self.global_seasons(force_refresh=force_refresh),
        )
        return leagues, seasons

    async def refetch(self) -> tuple[list[League], list[Season]]:
        logger.debug('Refetching rankings overview')
        return await self.overview(force_refresh=True)

    def clear_cache(self) -> None:
        self.rankings.invalidate_all()
        self.profiles.invalidate_all()

    def filter_options(self, leagues: Iterable[Any], seasons: Iterable[Any]) -> FilterOptions:
        return self._filter_options(leagues, seasons)

    def start(self) -> None:
        self.rankings.start()
        self.profiles.start()

    def stop(self) -> None:
        self.rankings.stop()
        self.profiles.stop()

    async def aclose(self) -> None:
        await asyncio.gather(self.rankings.aclose(), self.profiles.aclose())

    async def __aenter__(self) -> RankingsService:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
