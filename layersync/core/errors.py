"""Error taxonomy for the extraction pipeline.

Input errors are raised before any network call and surfaced verbatim.
Transport and shape errors never leave a strategy; they become error
strings on an ``ExtractionResult``. ``friendly_error`` translates raw
browser/network messages into something a designer can act on.
"""

from typing import Optional, Union


class LayerSyncError(Exception):
    """Base class for all layer-sync errors."""


class ScrapeInputError(LayerSyncError):
    """Malformed request: bad URL, missing selectors, unknown preset."""


class ScrapeApiError(LayerSyncError):
    """The scrape backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InternalApiNotConfigured(LayerSyncError):
    """Internal bus-search API used while disabled or without a key."""


# substring -> user-facing message, first match wins
_FRIENDLY_MESSAGES = (
    ("ERR_NAME_NOT_RESOLVED", "Website not found. Please check the URL."),
    ("ERR_CONNECTION_REFUSED", "Could not connect to website. It may be down or blocking access."),
    ("timeout", "Website took too long to load. Try again or increase timeout."),
    ("Timeout", "Website took too long to load. Try again or increase timeout."),
    ("ERR_ABORTED", "Request was blocked. This website may restrict automated access."),
)


def friendly_error(error: Union[BaseException, str]) -> str:
    """Translate a transport error into a user-facing message.

    Args:
        error: Exception or raw message

    Returns:
        Friendly message, or the original text when nothing matches.
    """
    message = str(error) or "Unknown scraping error"
    for needle, friendly in _FRIENDLY_MESSAGES:
        if needle in message:
            return friendly
    return message
