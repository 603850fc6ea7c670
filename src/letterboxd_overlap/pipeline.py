"""
End-to-end common-watchlist resolution.

    profiles (sequential) -> watchlists (parallel, fail fast)
        -> intersection -> metadata (sequential) -> ranking
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import httpx
from tqdm import tqdm

from .config import DEFAULT_MAX_CONCURRENT_USERS, REQUEST_DEADLINE, ResolverSettings
from .errors import MetadataError, RequestDeadlineExceeded
from .overlap import ResultMovie, aggregate_watchlists, build_result, rank_results
from .scraper import LetterboxdScraper, UserProfile, WatchlistEntry
from .tmdb import MetadataRecord, TMDBClient

logger = logging.getLogger(__name__)


async def validate_profiles(scraper: LetterboxdScraper, usernames: Sequence[str]) -> dict[str, UserProfile]:
    """Fetch every profile in order. The first missing profile aborts the request."""
    profiles: dict[str, UserProfile] = {}
    for username in usernames:
        profiles[username] = await scraper.fetch_profile(username)
    logger.info(f"Validated {len(profiles)} profiles")
    return profiles


async def fetch_watchlists(
    scraper: LetterboxdScraper,
    usernames: Sequence[str],
    max_concurrent: int = DEFAULT_MAX_CONCURRENT_USERS,
) -> dict[str, list[WatchlistEntry]]:
    """
    Scrape all watchlists concurrently and wait for every one of them.

    If any user's fetch fails, the remaining fetches are cancelled and that
    error is raised. Results are keyed by username in input order.
    """
    if not usernames:
        return {}

    semaphore = asyncio.Semaphore(max_concurrent)

    async def _fetch(username: str) -> list[WatchlistEntry]:
        async with semaphore:
            return await scraper.scrape_watchlist(username)

    tasks = {asyncio.create_task(_fetch(u), name=f"watchlist:{u}"): u for u in usernames}
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in tasks:
            if task in done and task.exception() is not None:
                raise task.exception()
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info(f"Cancelled {len(pending)} in-flight watchlist fetches")
            await asyncio.gather(*pending, return_exceptions=True)
        # Only the first failure is raised; read the rest so asyncio does not report them
        for task in tasks:
            if task.done() and not task.cancelled():
                task.exception()

    return {username: task.result() for task, username in tasks.items()}


async def resolve_metadata(
    titles: Sequence[str],
    settings: ResolverSettings,
    http_client: httpx.AsyncClient | None = None,
    show_progress: bool = False,
) -> dict[str, MetadataRecord]:
    """
    Resolve titles one at a time. Titles that cannot be resolved are left out
    of the returned mapping; nothing here fails the request.
    """
    if not settings.is_configured:
        logger.warning("TMDB API key not configured; using placeholder metadata for all titles")
        return {}

    records: dict[str, MetadataRecord] = {}
    async with TMDBClient(settings, http_client) as client:
        for title in tqdm(titles, desc="Metadata", disable=not show_progress):
            try:
                records[title] = await client.resolve(title)
            except MetadataError as exc:
                logger.warning(f"Could not fetch TMDB details for '{title}': {exc}")

    logger.info(f"Resolved metadata for {len(records)}/{len(titles)} titles")
    return records


async def _resolve(
    usernames: list[str],
    settings: ResolverSettings,
    letterboxd_client: httpx.AsyncClient | None,
    tmdb_client: httpx.AsyncClient | None,
    max_concurrent_users: int,
    show_progress: bool,
) -> list[ResultMovie]:
    async with LetterboxdScraper(client=letterboxd_client) as scraper:
        profiles = await validate_profiles(scraper, usernames)
        watchlists = await fetch_watchlists(scraper, usernames, max_concurrent_users)

    common = aggregate_watchlists(watchlists)
    if not common:
        return []

    metadata = await resolve_metadata(
        [t.title for t in common], settings, tmdb_client, show_progress=show_progress
    )
    results = [build_result(t, profiles, metadata.get(t.title)) for t in common]
    return rank_results(results)


async def resolve_common_movies(
    usernames: Sequence[str],
    settings: ResolverSettings | None = None,
    *,
    letterboxd_client: httpx.AsyncClient | None = None,
    tmdb_client: httpx.AsyncClient | None = None,
    max_concurrent_users: int = DEFAULT_MAX_CONCURRENT_USERS,
    deadline: float = REQUEST_DEADLINE,
    show_progress: bool = False,
) -> list[ResultMovie]:
    """
    Find films on two or more of the given users' watchlists, enriched and ranked.

    Args:
        usernames: Letterboxd usernames; duplicates are ignored
        settings: TMDB configuration; defaults to the TMDB_API_KEY environment variable
        letterboxd_client: Optional pre-built client for Letterboxd requests
        tmdb_client: Optional pre-built client for TMDB requests
        max_concurrent_users: Upper bound on simultaneous watchlist scrapes
        deadline: Seconds before the whole request is abandoned
        show_progress: Show a tqdm bar over metadata resolution

    Returns:
        Results sorted by contributor count then rating; empty if nothing is shared

    Raises:
        ValueError: no usernames given
        ProfileNotFound, WatchlistFetchError: a user could not be scraped
        RequestDeadlineExceeded: the deadline elapsed
    """
    if not usernames:
        raise ValueError("no usernames provided")

    unique = list(dict.fromkeys(usernames))
    if settings is None:
        settings = ResolverSettings.from_env()

    try:
        return await asyncio.wait_for(
            _resolve(unique, settings, letterboxd_client, tmdb_client, max_concurrent_users, show_progress),
            timeout=deadline,
        )
    except asyncio.TimeoutError:
        logger.error(f"Request for {', '.join(unique)} exceeded {deadline:.0f}s deadline")
        raise RequestDeadlineExceeded(deadline) from None


def resolve_common_movies_sync(usernames: Sequence[str], settings: ResolverSettings | None = None, **kwargs) -> list[ResultMovie]:
    """Blocking wrapper around resolve_common_movies."""
    return asyncio.run(resolve_common_movies(usernames, settings, **kwargs))
