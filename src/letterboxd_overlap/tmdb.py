"""
Metadata resolution against The Movie Database (TMDB).

Letterboxd titles are free text ("Amélie (2001)", "Mission: Impossible -
Fallout"), so a title is searched under a few progressively looser spellings
until one returns a hit. The first hit's details (credits, images) are then
fetched and flattened into a MetadataRecord.
"""

from __future__ import annotations

import re
import httpx
import asyncio
import logging
from dataclasses import dataclass, field

from .config import (
    TMDB_API_BASE,
    TMDB_POSTER_BASE,
    TMDB_ORIGINAL_BASE,
    PLACEHOLDER_POSTER,
    HTTP_TIMEOUT,
    TMDB_SEARCH_DELAY,
    TMDB_RATE_LIMIT_WAIT,
    TMDB_DETAIL_RETRY_DELAY,
    MAX_CAST,
    ResolverSettings,
)
from .errors import MetadataError, MetadataNotFound, MetadataTransportError, RateLimited
from .utils import async_retry_with_backoff, mask_secret

logger = logging.getLogger(__name__)

YEAR_SUFFIX_RE = re.compile(r"\((\d{4})\)$", re.ASCII)
# ASCII \w: accented letters count as punctuation and are stripped
NON_WORD_RE = re.compile(r"[^\w\s]", re.ASCII)
WHITESPACE_RE = re.compile(r"\s+")
TITLE_REPLACEMENTS = (
    ("&", "and"),
    ("'", ""),
    ("-", " "),
    (":", ""),
)

NOT_AVAILABLE = "N/A"
NO_OVERVIEW = "No overview available."
NO_RELEASE_DATE = "0000-00-00"
NO_RELEASE_YEAR = "----"


@dataclass(frozen=True)
class Person:
    name: str
    id: int | None


DIRECTOR_UNKNOWN = Person(name="unknown", id=None)


@dataclass(frozen=True)
class MetadataRecord:
    """Flattened TMDB details for one film, ready for display."""

    tmdb_id: int | None
    rating: float
    formatted_rating: str
    poster_url: str
    backdrop_url: str
    logo_url: str
    release_date: str
    release_year: str
    runtime: int
    formatted_runtime: str
    genres: list[str] = field(default_factory=list)
    imdb_id: str | None = None
    overview: str = NO_OVERVIEW
    director: Person = DIRECTOR_UNKNOWN
    cast: list[Person] = field(default_factory=list)

    @classmethod
    def placeholder(cls) -> "MetadataRecord":
        """Deterministic stand-in used when a title could not be resolved."""
        return cls(
            tmdb_id=None,
            rating=0.0,
            formatted_rating=NOT_AVAILABLE,
            poster_url=PLACEHOLDER_POSTER,
            backdrop_url=PLACEHOLDER_POSTER,
            logo_url="",
            release_date=NO_RELEASE_DATE,
            release_year=NO_RELEASE_YEAR,
            runtime=0,
            formatted_runtime="",
            genres=[],
            imdb_id=None,
            overview=NO_OVERVIEW,
            director=DIRECTOR_UNKNOWN,
            cast=[],
        )


def split_year(title: str) -> tuple[str, str | None]:
    """
    Split a trailing "(YYYY)" off a title.

    >>> split_year("Amélie (2001)")
    ('Amélie', '2001')
    """
    match = YEAR_SUFFIX_RE.search(title)
    if not match:
        return title, None
    return title[:match.start()].strip(), match.group(1)


def build_search_variants(title: str) -> list[str]:
    """
    Search strings to try for a (year-stripped) title, most faithful first.

    1. the title as given
    2. the title with punctuation removed
    3. the title with common textual substitutions and collapsed whitespace
    """
    variants = [title]

    clean = NON_WORD_RE.sub("", title)
    if clean != title:
        variants.append(clean)

    alt = title
    for old, new in TITLE_REPLACEMENTS:
        alt = alt.replace(old, new)
    alt = WHITESPACE_RE.sub(" ", alt.strip())
    if alt != title and alt not in variants:
        variants.append(alt)

    return variants


def _pick_logo(logos: list[dict]) -> str | None:
    """Prefer an English logo, else the first language-neutral one."""
    neutral = None
    for logo in logos:
        path = logo.get("file_path")
        if not path:
            continue
        lang = logo.get("iso_639_1")
        if lang == "en":
            return path
        if neutral is None and lang in (None, "xx"):
            neutral = path
    return neutral


def parse_details(payload: dict) -> MetadataRecord:
    """Derive a MetadataRecord from a /movie/{id} payload with credits and images appended."""
    rating = float(payload.get("vote_average") or 0.0)

    poster_path = payload.get("poster_path")
    poster_url = f"{TMDB_POSTER_BASE}{poster_path}" if poster_path else PLACEHOLDER_POSTER

    backdrop_path = payload.get("backdrop_path")
    backdrop_url = f"{TMDB_ORIGINAL_BASE}{backdrop_path}" if backdrop_path else poster_url

    images = payload.get("images") or {}
    logo_path = _pick_logo(images.get("logos") or [])
    logo_url = f"{TMDB_ORIGINAL_BASE}{logo_path}" if logo_path else ""

    release_date = payload.get("release_date") or ""
    release_year = release_date.split("-")[0] if release_date else ""

    runtime = int(payload.get("runtime") or 0)

    genres = [g["name"] for g in payload.get("genres") or [] if g.get("name")]

    credits = payload.get("credits") or {}
    director = DIRECTOR_UNKNOWN
    for member in credits.get("crew") or []:
        if member.get("job") == "Director":
            director = Person(name=member.get("name") or DIRECTOR_UNKNOWN.name, id=member.get("id"))
            break

    cast = [
        Person(name=member.get("name", ""), id=member.get("id"))
        for member in (credits.get("cast") or [])[:MAX_CAST]
    ]

    return MetadataRecord(
        tmdb_id=payload.get("id"),
        rating=rating,
        formatted_rating=f"{rating:.1f}" if rating > 0 else NOT_AVAILABLE,
        poster_url=poster_url,
        backdrop_url=backdrop_url,
        logo_url=logo_url,
        release_date=release_date,
        release_year=release_year or NO_RELEASE_YEAR,
        runtime=runtime,
        formatted_runtime=f"{runtime} min" if runtime > 0 else "",
        genres=genres,
        imdb_id=payload.get("imdb_id") or None,
        overview=payload.get("overview") or NO_OVERVIEW,
        director=director,
        cast=cast,
    )


class TMDBClient:
    """Resolves Letterboxd titles to TMDB records."""

    BASE = TMDB_API_BASE

    def __init__(
        self,
        settings: ResolverSettings,
        http_client: httpx.AsyncClient | None = None,
        search_delay: float = TMDB_SEARCH_DELAY,
        rate_limit_wait: float = TMDB_RATE_LIMIT_WAIT,
    ):
        if not settings.is_configured:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self.search_delay = search_delay
        self.rate_limit_wait = rate_limit_wait

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
        return False

    def _mask(self, text: str) -> str:
        return mask_secret(text, self._settings.api_key)

    async def _request(self, path: str, params: dict) -> httpx.Response:
        if not self._client:
            raise RuntimeError("TMDBClient must be used as an async context manager")
        try:
            return await self._client.get(
                f"{self.BASE}{path}",
                params={"api_key": self._settings.api_key, **params},
            )
        except httpx.HTTPError as exc:
            raise MetadataTransportError(
                f"network error: {type(exc).__name__}: {self._mask(str(exc))}"
            ) from exc

    async def search(self, query: str, year: str | None = None) -> int | None:
        """
        Return the id of the first search hit for ``query``, or None if there are none.

        A 429 is waited out once and the same query retried.

        Raises:
            MetadataTransportError: network failure, bad status, or bad payload
        """
        params = {"query": query}
        if year:
            params["year"] = year

        resp = await self._request("/search/movie", params)
        if resp.status_code == 429:
            logger.warning(f"Rate limited on search for '{query}', waiting {self.rate_limit_wait:.1f}s...")
            await asyncio.sleep(self.rate_limit_wait)
            resp = await self._request("/search/movie", params)
            if resp.status_code == 429:
                raise RateLimited("/search/movie")

        if resp.status_code != 200:
            raise MetadataTransportError(f"API error: status code {resp.status_code}", resp.status_code)

        try:
            results = resp.json().get("results") or []
            if not results:
                return None
            return int(results[0]["id"])
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise MetadataTransportError(f"parse error: {exc}") from exc

    async def ping(self, query: str = "interstellar") -> httpx.Response:
        """Single unretried search, returning the raw response for status inspection."""
        return await self._request("/search/movie", {"query": query})

    @async_retry_with_backoff(
        max_retries=2,
        initial_delay=TMDB_DETAIL_RETRY_DELAY,
        exceptions=(MetadataTransportError,),
    )
    async def _get_details_response(self, movie_id: int) -> httpx.Response:
        resp = await self._request(f"/movie/{movie_id}", {"append_to_response": "credits,images"})
        if resp.status_code != 200:
            raise MetadataTransportError(f"details API error: status code {resp.status_code}", resp.status_code)
        return resp

    async def fetch_details(self, movie_id: int) -> dict:
        """
        Fetch the full record for ``movie_id``. A failed request is retried
        once; an unparseable body is not.
        """
        resp = await self._get_details_response(movie_id)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise MetadataTransportError(f"failed to parse movie details: {exc}") from exc
        if not isinstance(payload, dict):
            raise MetadataTransportError("failed to parse movie details: expected an object")
        return payload

    async def resolve(self, title: str) -> MetadataRecord:
        """
        Resolve a Letterboxd title to a MetadataRecord.

        Raises:
            MetadataNotFound: no search variant produced a hit
            MetadataTransportError: the detail fetch failed or its payload was malformed
        """
        query, year = split_year(title)
        variants = build_search_variants(query)

        movie_id = None
        last_error: Exception | None = None
        for attempt, variant in enumerate(variants, 1):
            if attempt > 1:
                await asyncio.sleep(self.search_delay)

            logger.debug(f"TMDB search attempt {attempt} for '{title}': query={variant!r} year={year}")
            try:
                movie_id = await self.search(variant, year)
            except MetadataTransportError as exc:
                last_error = exc
                logger.debug(f"  Search attempt {attempt} failed: {exc}")
                continue

            if movie_id is not None:
                logger.debug(f"Found '{title}' with TMDB id {movie_id} on attempt {attempt}")
                break

        if movie_id is None:
            logger.warning(
                f"No TMDB results found for '{title}' after {len(variants)} attempts. Last error: {last_error}"
            )
            raise MetadataNotFound(title, last_error)

        payload = await self.fetch_details(movie_id)
        try:
            return parse_details(payload)
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            raise MetadataTransportError(f"failed to parse movie details: {exc}") from exc


async def check_api_key(settings: ResolverSettings, http_client: httpx.AsyncClient | None = None) -> str:
    """
    Verify the TMDB key with a single known search.

    Returns a human-readable success message.

    Raises:
        MetadataError: key not configured
        MetadataTransportError: key rejected, or TMDB unreachable
    """
    if not settings.is_configured:
        raise MetadataError("TMDB API key not configured")

    async with TMDBClient(settings, http_client) as client:
        resp = await client.ping()

    if resp.status_code == 401:
        raise MetadataTransportError("Invalid TMDB API key", 401)
    if resp.status_code != 200:
        raise MetadataTransportError(f"TMDB API error: status code {resp.status_code}", resp.status_code)

    try:
        results = resp.json().get("results") or []
    except (ValueError, AttributeError) as exc:
        raise MetadataTransportError(f"Failed to parse TMDB response: {exc}") from exc

    return f"TMDB API key is working! Found {len(results)} results for 'Interstellar'"
