"""Typed views of league, season, ranking and profile documents."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    # Documents arrive camelCased from the store and carry extra fields we do not model.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


class RankingEntry(Document):
    user_id: str
    username: str = ''
    display_name: str = ''
    photo_url: str | None = Field(default=None, alias='photoURL')
    games_played: int = 0
    games_won: int = 0
    total_points: int = 0
    win_rate: float = 0.0
    rank: int = 0


class League(Document):
    id: str
    name: str
    description: str = ''
    photo_url: str | None = Field(default=None, alias='photoURL')
    status: str = 'active'
    current_season: str | None = None
    season_ids: list[str] = Field(default_factory=list)
    rankings: list[RankingEntry] = Field(default_factory=list)


class Season(Document):
    id: str
    name: str
    description: str = ''
    status: str = 'active'
    is_default: bool = False
    league_id: str | None = None
    start_date: str | None = None
    end_date: str | None = None

    @property
    def is_global(self) -> bool:
        return self.league_id is None


class UserProfile(Document):
    id: str
    username: str = ''
    display_name: str = ''
    photo_url: str | None = Field(default=None, alias='photoURL')
    stats: dict[str, Any] = Field(default_factory=dict)


class FilterOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class FilterOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    leagues: tuple[FilterOption, ...]
    seasons: tuple[FilterOption, ...]
