from letterboxd_overlap import overlap
from letterboxd_overlap.scraper import UserProfile, WatchlistEntry
from letterboxd_overlap.tmdb import DIRECTOR_UNKNOWN, MetadataRecord, Person


def entry(title: str, slug: str | None = None) -> WatchlistEntry:
    return WatchlistEntry(title, f"https://letterboxd.com/film/{slug or title.lower()}/")


def metadata(rating: float) -> MetadataRecord:
    record = MetadataRecord.placeholder()
    return MetadataRecord(**{**record.__dict__, "rating": rating, "formatted_rating": f"{rating:.1f}"})


def test_aggregate_counts_users_per_title():
    watchlists = {
        "alice": [entry("Dune (2021)", "dune-a"), entry("Arrival (2016)"), entry("Heat (1995)")],
        "bob": [entry("Arrival (2016)"), entry("Dune (2021)", "dune-b")],
        "carol": [entry("Arrival (2016)")],
    }

    common = overlap.aggregate_watchlists(watchlists)

    by_title = {t.title: t for t in common}
    assert set(by_title) == {"Dune (2021)", "Arrival (2016)"}
    assert by_title["Dune (2021)"].contributors == ["alice", "bob"]
    assert by_title["Arrival (2016)"].contributors == ["alice", "bob", "carol"]
    assert by_title["Arrival (2016)"].count == 3
    # first-seen link wins
    assert by_title["Dune (2021)"].url == "https://letterboxd.com/film/dune-a/"


def test_aggregate_drops_single_user_titles_and_is_exact_match():
    watchlists = {
        "alice": [entry("Heat (1995)"), entry("Solaris (1972)")],
        "bob": [entry("heat (1995)"), entry("Solaris (2002)")],
    }

    assert overlap.aggregate_watchlists(watchlists) == []


def test_aggregate_same_user_counted_once():
    watchlists = {
        "alice": [entry("Heat (1995)"), entry("Heat (1995)", "heat-dupe")],
        "bob": [entry("Heat (1995)")],
    }

    [heat] = overlap.aggregate_watchlists(watchlists)
    assert heat.contributors == ["alice", "bob"]


def test_aggregate_is_deterministic():
    watchlists = {
        "alice": [entry("A"), entry("B"), entry("C")],
        "bob": [entry("C"), entry("B"), entry("A")],
    }

    first = overlap.aggregate_watchlists(watchlists)
    second = overlap.aggregate_watchlists(watchlists)

    assert [(t.title, t.contributors) for t in first] == [(t.title, t.contributors) for t in second]
    assert [t.title for t in first] == ["A", "B", "C"]


def test_build_result_attaches_avatars_and_placeholder():
    aggregated = overlap.AggregatedTitle("Dune (2021)", "https://letterboxd.com/film/dune/", ["alice", "bob"])
    profiles = {
        "alice": UserProfile("alice", "https://img/alice.jpg"),
        "bob": UserProfile("bob", "https://img/bob.jpg"),
    }

    movie = overlap.build_result(aggregated, profiles, None)

    assert movie.count == 2
    assert movie.users == [
        overlap.Contributor("alice", "https://img/alice.jpg"),
        overlap.Contributor("bob", "https://img/bob.jpg"),
    ]
    assert movie.formatted_rating == "N/A"
    assert movie.overview == "No overview available."
    assert movie.genres == [] and movie.cast == []
    assert movie.director == DIRECTOR_UNKNOWN


def test_build_result_copies_metadata():
    aggregated = overlap.AggregatedTitle("Dune (2021)", "u", ["alice", "bob"])
    record = MetadataRecord(
        **{
            **MetadataRecord.placeholder().__dict__,
            "rating": 7.8,
            "formatted_rating": "7.8",
            "genres": ["Science Fiction"],
            "director": Person("Denis Villeneuve", 137427),
        }
    )

    movie = overlap.build_result(aggregated, {}, record)

    assert movie.rating == 7.8
    assert movie.genres == ["Science Fiction"]
    assert movie.director.name == "Denis Villeneuve"
    assert [u.avatar for u in movie.users] == ["", ""]


def test_rank_results_orders_by_count_then_rating():
    def result(title, users, rating):
        return overlap.build_result(overlap.AggregatedTitle(title, "u", users), {}, metadata(rating))

    ranked = overlap.rank_results([
        result("Low", ["a", "b"], 5.0),
        result("Top", ["a", "b", "c"], 6.0),
        result("High", ["a", "b"], 8.5),
        result("Unrated", ["a", "b", "c"], 0.0),
    ])

    assert [m.title for m in ranked] == ["Top", "Unrated", "High", "Low"]
    for earlier, later in zip(ranked, ranked[1:]):
        assert earlier.count > later.count or (
            earlier.count == later.count and earlier.rating >= later.rating
        )
