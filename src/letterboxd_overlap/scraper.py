import httpx
import asyncio
import logging
from dataclasses import dataclass
from selectolax.parser import HTMLParser
from .config import (
    LETTERBOXD_BASE_URL,
    USER_AGENT,
    HTTP_TIMEOUT,
    PAGE_DELAY,
)
from .errors import ProfileNotFound, WatchlistFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserProfile:
    username: str
    avatar_url: str


@dataclass(frozen=True)
class WatchlistEntry:
    title: str
    url: str


def _absolute_url(href: str) -> str:
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return f"{LETTERBOXD_BASE_URL}{href}"


def parse_avatar(tree: HTMLParser) -> str | None:
    """Return the og:image reference from a profile page, or None if missing."""
    meta = tree.css_first("meta[property='og:image']")
    if not meta:
        return None
    content = (meta.attributes.get("content") or "").strip()
    return content or None


def parse_watchlist_page(tree: HTMLParser) -> tuple[list[WatchlistEntry], str | None]:
    """
    Extract poster entries and the next-page link from one watchlist page.

    Poster titles come from the poster image alt text (older markup) or the
    data-item-name attribute (react grid markup). Entries without a title or
    detail link are skipped.

    Returns:
        (entries in page order, absolute URL of the next page or None)
    """
    entries = []
    for item in tree.css("li.poster-container, li.griditem"):
        poster = item.css_first("div.film-poster, div.react-component, [data-target-link]")
        if not poster:
            continue

        link = (poster.attributes.get("data-target-link") or "").strip()

        title = ""
        img = poster.css_first("img") or item.css_first("img")
        if img:
            title = (img.attributes.get("alt") or "").strip()
        if not title:
            title = (poster.attributes.get("data-item-name") or "").strip()

        if not title or not link:
            logger.debug(f"Skipping poster entry with title={title!r} link={link!r}")
            continue

        entries.append(WatchlistEntry(title=title, url=_absolute_url(link)))

    next_url = None
    next_link = tree.css_first("a.next")
    if next_link:
        href = (next_link.attributes.get("href") or "").strip()
        if href:
            next_url = _absolute_url(href)

    return entries, next_url


class LetterboxdScraper:
    """
    Async scraper for Letterboxd profile and watchlist pages.

    One instance can serve many users concurrently: the only state shared
    between calls is the HTTP client and the immutable page delay.
    """

    BASE = LETTERBOXD_BASE_URL

    def __init__(self, page_delay: float = PAGE_DELAY, client: httpx.AsyncClient | None = None):
        self.page_delay = page_delay
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Async context manager entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                timeout=HTTP_TIMEOUT,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None
        return False

    async def _get(self, url: str) -> HTMLParser:
        """
        GET a page and parse it. Raises httpx.HTTPError on transport failure
        or a non-success status.
        """
        if not self.client:
            raise RuntimeError("LetterboxdScraper must be used as an async context manager")

        resp = await self.client.get(url)
        resp.raise_for_status()
        return HTMLParser(resp.text)

    async def fetch_profile(self, username: str) -> UserProfile:
        """
        Confirm that a username resolves to a public profile and read its avatar.

        Raises:
            ProfileNotFound: page unreachable or no avatar in the page metadata
        """
        url = f"{self.BASE}/{username}/"
        try:
            tree = await self._get(url)
        except httpx.HTTPError as exc:
            logger.error(f"Could not fetch profile for '{username}': {type(exc).__name__}: {exc}")
            raise ProfileNotFound(username, str(exc)) from exc

        avatar = parse_avatar(tree)
        if not avatar:
            logger.error(f"Could not find avatar for user '{username}'")
            raise ProfileNotFound(username, "no profile image")

        return UserProfile(username=username, avatar_url=avatar)

    async def scrape_watchlist(self, username: str) -> list[WatchlistEntry]:
        """
        Follow the watchlist's next-page links to the end and collect every entry.

        A title seen twice keeps its first detail link. Pages are fetched one at
        a time with ``page_delay`` seconds between them; a URL is never fetched
        twice.

        Raises:
            WatchlistFetchError: any page failed to load, or nothing was found
        """
        films: dict[str, WatchlistEntry] = {}
        visited: set[str] = set()
        url: str | None = f"{self.BASE}/{username}/watchlist/"
        page = 0

        logger.info(f"Scraping {username}'s watchlist...")
        while url and url not in visited:
            if page > 0:
                await asyncio.sleep(self.page_delay)
            visited.add(url)
            page += 1

            try:
                tree = await self._get(url)
            except httpx.HTTPError as exc:
                logger.error(f"Watchlist page {page} failed for '{username}': {type(exc).__name__}: {exc}")
                raise WatchlistFetchError(
                    username, WatchlistFetchError.UNREACHABLE, f"page {page}: {exc}"
                ) from exc

            entries, url = parse_watchlist_page(tree)
            for entry in entries:
                films.setdefault(entry.title, entry)
            logger.debug(f"  Watchlist page {page}: {len(entries)} films")

        if not films:
            logger.error(f"No movies found in watchlist for '{username}'")
            raise WatchlistFetchError(username, WatchlistFetchError.EMPTY)

        logger.info(f"  {username}: {len(films)} films across {page} page(s)")
        return list(films.values())
