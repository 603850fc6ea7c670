import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from .config import ResolverSettings
from .errors import CommonWatchlistError, MetadataError, UserLookupError
from .overlap import ResultMovie
from .pipeline import resolve_common_movies_sync
from .tmdb import check_api_key
from .utils import sanitize_username

logger = logging.getLogger(__name__)


def _movie_to_dict(movie: ResultMovie) -> dict:
    """Serialize a result the way the desktop frontend consumed it."""
    data = asdict(movie)
    data["imdb_id"] = movie.imdb_id or ""
    return data


def _output_results(movies: list[ResultMovie], args: argparse.Namespace) -> None:
    if args.limit:
        movies = movies[:args.limit]

    if args.format == "json":
        print(json.dumps([_movie_to_dict(m) for m in movies], indent=2, ensure_ascii=False))
        return

    logger.info(f"\n{'=' * 60}")
    logger.info(f"{len(movies)} Films on Multiple Watchlists:")
    logger.info(f"{'=' * 60}\n")

    for i, movie in enumerate(movies, 1):
        logger.info(f"{i}. {movie.title} [{movie.release_year}]  {movie.formatted_rating}")
        logger.info(f"   On {movie.count} watchlists: {', '.join(u.name for u in movie.users)}")

        details = [part for part in (movie.formatted_runtime, ", ".join(movie.genres)) if part]
        if details:
            logger.info(f"   {' | '.join(details)}")

        logger.info(f"   Director: {movie.director.name}")
        if movie.cast:
            logger.info(f"   Cast: {', '.join(p.name for p in movie.cast)}")
        logger.info(f"   {movie.url}")
        logger.info("")


def cmd_common(args: argparse.Namespace) -> int:
    """Find films shared between users' watchlists."""
    usernames = list(dict.fromkeys(sanitize_username(u) for u in args.usernames))
    usernames = [u for u in usernames if u]

    if len(usernames) < 2:
        logger.error("Need at least 2 usernames to compare watchlists")
        return 1

    settings = ResolverSettings.from_env(args.api_key)
    if not settings.is_configured:
        logger.warning("No usable TMDB API key; results will have placeholder metadata")

    show_progress = not args.no_progress and sys.stderr.isatty()

    logger.info(f"\nComparing watchlists for {', '.join(usernames)}\n")
    try:
        movies = resolve_common_movies_sync(usernames, settings, show_progress=show_progress)
    except UserLookupError as exc:
        logger.error(str(exc))
        return 1
    except CommonWatchlistError as exc:
        logger.error(f"Request failed: {exc}")
        return 1

    if not movies:
        logger.info(f"No common movies found on the watchlists of {', '.join(usernames)}")
        if args.format == "json":
            print("[]")
        return 0

    _output_results(movies, args)
    return 0


def cmd_check_key(args: argparse.Namespace) -> int:
    """Check that the TMDB API key works."""
    settings = ResolverSettings.from_env(args.api_key)
    try:
        message = asyncio.run(check_api_key(settings))
    except MetadataError as exc:
        logger.error(str(exc))
        return 1

    logger.info(message)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Find films on several Letterboxd watchlists")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common_parser = subparsers.add_parser("common", help="Find films shared between watchlists")
    common_parser.add_argument("usernames", nargs="+", help="Letterboxd usernames (at least 2)")
    common_parser.add_argument("--api-key", help="TMDB API key (defaults to $TMDB_API_KEY)")
    common_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    common_parser.add_argument("--limit", type=int, help="Only show the top N films")
    common_parser.add_argument("--no-progress", action="store_true", help="Hide the metadata progress bar")
    common_parser.set_defaults(func=cmd_common)

    check_parser = subparsers.add_parser("check-key", help="Check the TMDB API key")
    check_parser.add_argument("--api-key", help="TMDB API key (defaults to $TMDB_API_KEY)")
    check_parser.set_defaults(func=cmd_check_key)

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # httpx logs full request URLs at INFO; TMDB URLs carry the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
