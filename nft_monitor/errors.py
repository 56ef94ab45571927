"""Exception types for the NFT activity monitor."""
from typing import Optional


class MonitorError(Exception):
    """Base class for monitor errors."""


class ConfigError(MonitorError):
    """Fatal configuration problem detected at startup (e.g. missing API key)."""


class UpstreamError(MonitorError):
    """A marketplace API call failed. Non-fatal: the collection is skipped."""

    def __init__(self, message: str, collection: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.collection = collection
        self.status_code = status_code


class NetworkError(UpstreamError):
    """Transport failure or request timeout."""


class AuthError(UpstreamError):
    """API key rejected by the marketplace."""


class NotFoundError(UpstreamError):
    """Collection does not exist upstream."""


class PersistenceError(MonitorError):
    """The monitoring log could not be written."""


class DetectionError(MonitorError):
    """Collection stats violate the detector's input contract."""
