"""Exception hierarchy for Program Report."""


class ReportError(Exception):
    """Base exception for report errors."""

    pass


class ConfigNotFoundError(ReportError):
    """Configuration file not found."""

    pass


class InvalidConfigError(ReportError):
    """Configuration is invalid."""

    pass


class RemoteError(ReportError):
    """A call to the Jira API failed."""

    pass


class RateLimitError(RemoteError):
    """Jira answered 429. ``retry_after`` holds the server hint in seconds."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TransientRemoteError(RemoteError):
    """Jira could not be reached (connection error or timeout)."""

    pass


class RemoteRequestError(RemoteError):
    """Jira answered with a non-success status other than 429."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteRequestError):
    """Jira authentication failed."""

    pass


class CacheUnavailableError(ReportError):
    """The report cache store could not be read or written."""

    pass
