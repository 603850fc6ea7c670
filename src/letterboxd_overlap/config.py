"""
Configuration constants for the Letterboxd watchlist overlap finder.

This module centralizes all timing, limit and endpoint values.
Values can be overridden via environment variables.
"""
import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Letterboxd
LETTERBOXD_BASE_URL = "https://letterboxd.com"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Scraper Configuration
HTTP_TIMEOUT = _get_float_env("LETTERBOXD_HTTP_TIMEOUT", 30.0, min_val=1.0)
PAGE_DELAY = _get_float_env("LETTERBOXD_PAGE_DELAY", 0.5, min_val=0.5)  # Courtesy pause between watchlist pages
DEFAULT_MAX_CONCURRENT_USERS = _get_int_env("LETTERBOXD_MAX_CONCURRENT_USERS", 5, min_val=1)
REQUEST_DEADLINE = _get_float_env("LETTERBOXD_REQUEST_DEADLINE", 600.0, min_val=1.0)

# TMDB endpoints
TMDB_API_BASE = "https://api.themoviedb.org/3"
TMDB_POSTER_BASE = "https://image.tmdb.org/t/p/w500"
TMDB_ORIGINAL_BASE = "https://image.tmdb.org/t/p/original"
PLACEHOLDER_POSTER = "https://placehold.co/500x750/1f1f1f/ffffff?text=No+Poster"

# TMDB Retry and Rate Limiting
TMDB_SEARCH_DELAY = _get_float_env("TMDB_SEARCH_DELAY", 0.25, min_val=0.25)
TMDB_RATE_LIMIT_WAIT = _get_float_env("TMDB_RATE_LIMIT_WAIT", 2.0, min_val=2.0)
TMDB_DETAIL_RETRY_DELAY = _get_float_env("TMDB_DETAIL_RETRY_DELAY", 0.5, min_val=0.5)

# Matching
MIN_API_KEY_LENGTH = 10
MIN_CONTRIBUTORS = 2
MAX_CAST = 5


@dataclass(frozen=True)
class ResolverSettings:
    """Per-request configuration handed to the metadata resolver."""

    api_key: str | None = None

    @classmethod
    def from_env(cls, runtime_key: str | None = None) -> "ResolverSettings":
        """
        Build settings from a runtime-supplied key, falling back to TMDB_API_KEY.

        A blank runtime key counts as not supplied.
        """
        key = (runtime_key or "").strip()
        if not key:
            key = os.environ.get("TMDB_API_KEY", "").strip()
        return cls(api_key=key or None)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and len(self.api_key) >= MIN_API_KEY_LENGTH
