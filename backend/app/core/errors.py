"""Error types shared by the provider adapters and the routes.

All of them end up as a single human-readable string at the HTTP boundary.
"""


class ConfigurationError(Exception):
    """A required credential or resource identifier is not configured.

    Surfaced as a terminal 500 response and never retried.
    """


class UpstreamError(Exception):
    """A provider call failed (non-2xx status or transport failure)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamUnavailableError(UpstreamError):
    """The provider rejected a streaming call before any data was sent.

    Callers fall back to the blocking call exactly once.
    """
