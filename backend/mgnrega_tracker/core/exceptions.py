"""
Exceptions raised across the tracker backend.

Only InvalidInput and RateLimited ever reach a client as a failed request.
The rest are absorbed by the metrics pipeline, which degrades to cached or
generated data instead.
"""


class TrackerError(Exception):
    """Base exception for all tracker errors."""


class InvalidInput(TrackerError):
    """
    A required request parameter is missing or malformed.

    Surfaced as HTTP 400 and never retried.
    """


class RateLimited(TrackerError):
    """The client exhausted its request window. Surfaced as HTTP 429."""


class UpstreamUnavailable(TrackerError):
    """
    The data.gov.in API failed: network error, timeout, bad status,
    unparseable body or an empty result set.
    """


class DataMismatch(UpstreamUnavailable):
    """
    The upstream API returned records, but none belongs to the requested
    district. Handled exactly like an unavailable upstream so another
    district's numbers are never served.
    """


class StoreUnavailable(TrackerError):
    """The district store or metrics cache database could not be reached."""
