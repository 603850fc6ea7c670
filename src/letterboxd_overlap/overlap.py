"""
Watchlist intersection and result ranking.

Finds the films that several users want to see and turns them into ranked
result records once metadata has been attached.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .config import MIN_CONTRIBUTORS
from .scraper import UserProfile, WatchlistEntry
from .tmdb import MetadataRecord, Person

logger = logging.getLogger(__name__)


@dataclass
class AggregatedTitle:
    """A title and the users whose watchlists contain it."""

    title: str
    url: str
    contributors: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.contributors)


@dataclass(frozen=True)
class Contributor:
    name: str
    avatar: str


@dataclass(frozen=True)
class ResultMovie:
    """A common film with its contributors and display metadata."""

    title: str
    url: str
    count: int
    users: list[Contributor]
    rating: float
    formatted_rating: str
    poster_url: str
    backdrop_url: str
    logo_url: str
    release_date: str
    release_year: str
    runtime: int
    formatted_runtime: str
    genres: list[str]
    imdb_id: str | None
    overview: str
    director: Person
    cast: list[Person]


def aggregate_watchlists(
    watchlists: Mapping[str, Sequence[WatchlistEntry]],
    min_contributors: int = MIN_CONTRIBUTORS,
) -> list[AggregatedTitle]:
    """
    Count how many users have each title and keep those on enough watchlists.

    Titles are matched by exact displayed text. Users are visited in the
    mapping's order, so ``contributors`` lists users in that order and the
    detail URL is the first one seen. Surviving titles keep first-seen order.
    """
    by_title: dict[str, AggregatedTitle] = {}

    for username, entries in watchlists.items():
        for entry in entries:
            aggregated = by_title.get(entry.title)
            if aggregated is None:
                by_title[entry.title] = AggregatedTitle(
                    title=entry.title, url=entry.url, contributors=[username]
                )
            elif username not in aggregated.contributors:
                aggregated.contributors.append(username)

    common = [t for t in by_title.values() if t.count >= min_contributors]
    logger.info(f"{len(common)} of {len(by_title)} titles appear on {min_contributors}+ watchlists")
    return common


def build_result(
    aggregated: AggregatedTitle,
    profiles: Mapping[str, UserProfile],
    metadata: MetadataRecord | None,
) -> ResultMovie:
    """Merge an aggregated title with contributor avatars and (possibly placeholder) metadata."""
    if metadata is None:
        metadata = MetadataRecord.placeholder()

    users = [
        Contributor(name=name, avatar=profiles[name].avatar_url if name in profiles else "")
        for name in aggregated.contributors
    ]

    return ResultMovie(
        title=aggregated.title,
        url=aggregated.url,
        count=aggregated.count,
        users=users,
        rating=metadata.rating,
        formatted_rating=metadata.formatted_rating,
        poster_url=metadata.poster_url,
        backdrop_url=metadata.backdrop_url,
        logo_url=metadata.logo_url,
        release_date=metadata.release_date,
        release_year=metadata.release_year,
        runtime=metadata.runtime,
        formatted_runtime=metadata.formatted_runtime,
        genres=list(metadata.genres),
        imdb_id=metadata.imdb_id,
        overview=metadata.overview,
        director=metadata.director,
        cast=list(metadata.cast),
    )


def rank_results(results: Sequence[ResultMovie]) -> list[ResultMovie]:
    """Sort by contributor count, then rating, both descending."""
    return sorted(results, key=lambda m: (-m.count, -m.rating))
