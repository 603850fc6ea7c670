import httpx
import pytest
from selectolax.parser import HTMLParser

from letterboxd_overlap import scraper
from letterboxd_overlap.config import USER_AGENT
from letterboxd_overlap.errors import ProfileNotFound, WatchlistFetchError


def poster(title: str, link: str) -> str:
    return (
        f'<li class="poster-container"><div class="film-poster" data-target-link="{link}">'
        f'<img alt="{title}" /></div></li>'
    )


def watchlist_page(*posters: str, next_href: str | None = None) -> str:
    nav = f'<a class="next" href="{next_href}">Older</a>' if next_href else ""
    return f"<html><body><ul>{''.join(posters)}</ul>{nav}</body></html>"


def mock_client(routes: dict[str, httpx.Response]) -> tuple[httpx.AsyncClient, list[str]]:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        return routes.get(request.url.path, httpx.Response(404, text="not found"))

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requested


def test_parse_avatar():
    tree = HTMLParser('<html><meta property="og:image" content="https://a.ltrbxd.com/alice.jpg" /></html>')
    assert scraper.parse_avatar(tree) == "https://a.ltrbxd.com/alice.jpg"
    assert scraper.parse_avatar(HTMLParser("<html><title>x</title></html>")) is None
    assert scraper.parse_avatar(HTMLParser('<html><meta property="og:image" content="" /></html>')) is None


def test_parse_watchlist_page_skips_incomplete_entries():
    html = watchlist_page(
        poster("Dune (2021)", "/film/dune-2021/"),
        poster("", "/film/untitled/"),
        '<li class="poster-container"><div class="film-poster"><img alt="No Link" /></div></li>',
        poster("Arrival (2016)", "/film/arrival-2016/"),
        next_href="/alice/watchlist/page/2/",
    )

    entries, next_url = scraper.parse_watchlist_page(HTMLParser(html))

    assert [e.title for e in entries] == ["Dune (2021)", "Arrival (2016)"]
    assert entries[0].url == "https://letterboxd.com/film/dune-2021/"
    assert next_url == "https://letterboxd.com/alice/watchlist/page/2/"


def test_parse_watchlist_page_reads_react_grid_markup():
    html = """
    <html><ul>
      <li class="griditem">
        <div class="react-component" data-item-name="Past Lives (2023)" data-target-link="/film/past-lives/"></div>
      </li>
    </ul></html>
    """

    entries, next_url = scraper.parse_watchlist_page(HTMLParser(html))

    assert entries == [scraper.WatchlistEntry("Past Lives (2023)", "https://letterboxd.com/film/past-lives/")]
    assert next_url is None


@pytest.mark.asyncio
async def test_scraper_sets_browser_user_agent():
    async with scraper.LetterboxdScraper() as lb:
        assert lb.client.headers["User-Agent"] == USER_AGENT
    assert lb.client is None


@pytest.mark.asyncio
async def test_fetch_profile_returns_avatar():
    client, _ = mock_client({
        "/alice/": httpx.Response(200, text='<meta property="og:image" content="https://img/alice.jpg">'),
    })
    async with client, scraper.LetterboxdScraper(client=client) as lb:
        profile = await lb.fetch_profile("alice")

    assert profile == scraper.UserProfile("alice", "https://img/alice.jpg")


@pytest.mark.asyncio
async def test_fetch_profile_missing_or_imageless_is_not_found():
    client, _ = mock_client({"/noimage/": httpx.Response(200, text="<html></html>")})
    async with client, scraper.LetterboxdScraper(client=client) as lb:
        with pytest.raises(ProfileNotFound) as missing:
            await lb.fetch_profile("ghost")
        with pytest.raises(ProfileNotFound) as imageless:
            await lb.fetch_profile("noimage")

    assert missing.value.username == "ghost"
    assert "'ghost'" in str(missing.value)
    assert imageless.value.username == "noimage"


@pytest.mark.asyncio
async def test_scrape_watchlist_follows_pages_with_delay(recorded_sleeps):
    client, requested = mock_client({
        "/alice/watchlist/": httpx.Response(200, text=watchlist_page(
            poster("Dune (2021)", "/film/dune-2021/"),
            next_href="/alice/watchlist/page/2/",
        )),
        "/alice/watchlist/page/2/": httpx.Response(200, text=watchlist_page(
            poster("Arrival (2016)", "/film/arrival-2016/"),
            poster("Dune (2021)", "/film/dune-duplicate/"),
            next_href="/alice/watchlist/page/3/",
        )),
        "/alice/watchlist/page/3/": httpx.Response(200, text=watchlist_page(
            poster("Heat (1995)", "/film/heat-1995/"),
        )),
    })

    async with client, scraper.LetterboxdScraper(page_delay=0.5, client=client) as lb:
        entries = await lb.scrape_watchlist("alice")

    assert requested == ["/alice/watchlist/", "/alice/watchlist/page/2/", "/alice/watchlist/page/3/"]
    assert recorded_sleeps == [0.5, 0.5]
    assert [e.title for e in entries] == ["Dune (2021)", "Arrival (2016)", "Heat (1995)"]
    assert entries[0].url == "https://letterboxd.com/film/dune-2021/"


@pytest.mark.asyncio
async def test_scrape_watchlist_stops_on_repeated_next_link(recorded_sleeps):
    client, requested = mock_client({
        "/loop/watchlist/": httpx.Response(200, text=watchlist_page(
            poster("Dune (2021)", "/film/dune-2021/"),
            next_href="/loop/watchlist/",
        )),
    })

    async with client, scraper.LetterboxdScraper(client=client) as lb:
        entries = await lb.scrape_watchlist("loop")

    assert requested == ["/loop/watchlist/"]
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_scrape_watchlist_empty_and_unreachable_are_distinguished(recorded_sleeps):
    client, _ = mock_client({
        "/empty/watchlist/": httpx.Response(200, text=watchlist_page()),
    })

    async with client, scraper.LetterboxdScraper(client=client) as lb:
        with pytest.raises(WatchlistFetchError) as empty:
            await lb.scrape_watchlist("empty")
        with pytest.raises(WatchlistFetchError) as unreachable:
            await lb.scrape_watchlist("private")

    assert empty.value.reason == WatchlistFetchError.EMPTY
    assert empty.value.username == "empty"
    assert unreachable.value.reason == WatchlistFetchError.UNREACHABLE
    assert "'private'" in str(unreachable.value)


@pytest.mark.asyncio
async def test_scrape_watchlist_fails_if_later_page_fails(recorded_sleeps):
    client, _ = mock_client({
        "/alice/watchlist/": httpx.Response(200, text=watchlist_page(
            poster("Dune (2021)", "/film/dune-2021/"),
            next_href="/alice/watchlist/page/2/",
        )),
        "/alice/watchlist/page/2/": httpx.Response(500, text="oops"),
    })

    async with client, scraper.LetterboxdScraper(client=client) as lb:
        with pytest.raises(WatchlistFetchError) as excinfo:
            await lb.scrape_watchlist("alice")

    assert "page 2" in str(excinfo.value)


@pytest.mark.asyncio
async def test_get_requires_context_manager():
    lb = scraper.LetterboxdScraper()
    with pytest.raises(RuntimeError):
        await lb.fetch_profile("alice")
