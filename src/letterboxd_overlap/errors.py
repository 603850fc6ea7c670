"""Exception hierarchy for the watchlist overlap pipeline."""


class CommonWatchlistError(Exception):
    """Base class for all pipeline errors."""


class UserLookupError(CommonWatchlistError):
    """A failure attributable to one Letterboxd user. Fatal to the whole request."""

    def __init__(self, username: str, message: str):
        super().__init__(message)
        self.username = username


class ProfileNotFound(UserLookupError):
    def __init__(self, username: str, detail: str | None = None):
        message = (
            f"could not find profile for user: '{username}'. "
            "The profile may be private or the username is incorrect"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(username, message)


class WatchlistFetchError(UserLookupError):
    """
    The watchlist could not be retrieved or was empty.

    ``reason`` is ``"unreachable"`` when the root page failed to load and
    ``"empty"`` when it loaded but yielded no entries.
    """

    UNREACHABLE = "unreachable"
    EMPTY = "empty"

    def __init__(self, username: str, reason: str = UNREACHABLE, detail: str | None = None):
        if reason == self.EMPTY:
            message = f"no movies found in watchlist for user: '{username}'"
        else:
            message = (
                f"could not find a public watchlist for user: '{username}'. "
                "The profile may be private, empty, or the username is incorrect"
            )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(username, message)
        self.reason = reason


class MetadataError(CommonWatchlistError):
    """Base class for metadata provider failures. Always recovered locally."""


class MetadataNotFound(MetadataError):
    def __init__(self, title: str, last_error: Exception | None = None):
        super().__init__(f"no movie found for: {title}")
        self.title = title
        self.last_error = last_error


class MetadataTransportError(MetadataError):
    """Network failure, unexpected status, or unparseable payload."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(MetadataTransportError):
    """HTTP 429 from the metadata provider. Retried internally, never surfaced."""

    def __init__(self, url: str):
        super().__init__(f"rate limited on {url}", status_code=429)


class RequestDeadlineExceeded(CommonWatchlistError):
    def __init__(self, seconds: float):
        super().__init__(f"request did not finish within {seconds:.0f}s")
        self.seconds = seconds
