# aibot/core/exceptions.py

"""Error kinds raised across the relay pipeline."""

from typing import Optional


class AibotError(Exception):
    """Base class for relay errors"""


class InvalidArgument(AibotError, ValueError):
    """A required argument was missing or blank; raised before any I/O."""


class MediaFetchError(AibotError):
    """Channel-hosted media could not be resolved, downloaded or saved."""


class ModelUnavailable(AibotError):
    """The completion backend could not be reached or answered with an error."""


class ModelTimeout(AibotError):
    """The completion backend did not answer within the configured timeout."""


class DeliveryError(AibotError):
    """The channel API refused or failed to accept an outbound message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaValidationError(AibotError):
    """Model output did not match the expected record shape."""
