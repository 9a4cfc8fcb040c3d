from typing import Any, Optional


class RobinStatsError(Exception):
    """Base class for every error raised by the ingestion pipeline."""

    def __init__(self, message: str, url: Optional[str] = None, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.url = url
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class FetchError(RobinStatsError):
    """A single request failed. Subclasses tell the failure modes apart."""


class TransportError(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "", url: Optional[str] = None):
        super().__init__(f"HTTP error {status_code}: {reason}".rstrip(": "), url=url)
        self.status_code = status_code
        self.reason = reason


class RequestTimeoutError(FetchError):
    """The request was aborted after its configured timeout."""

    def __init__(self, timeout_ms: int, url: Optional[str] = None):
        super().__init__(f"Request timed out after {timeout_ms}ms", url=url)
        self.timeout_ms = timeout_ms


class NetworkError(FetchError):
    """Connection-level failure: DNS, refused connection, offline."""

    def __init__(self, detail: Any, url: Optional[str] = None):
        super().__init__(f"Network error: {detail}", url=url)
        self.detail = detail


class ParseError(RobinStatsError):
    """One record block could not be normalized. Contained by the parsers."""


class CacheError(RobinStatsError):
    """A write against the offline cache failed."""
