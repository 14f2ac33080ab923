"""Error taxonomy for market-data fetches.

A lookup miss (an asset id absent from the current list) is not an error
and has no exception type here: lookups return ``None``.
"""


class MarketDataError(Exception):
    """Base class for failures that put a fetch concern into ERROR."""


class NetworkFailure(MarketDataError):
    """The request was rejected, timed out or returned a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedPayload(MarketDataError):
    """The response body was not valid JSON or lacked a required field."""
