"""Exception hierarchy for btclient.

Callers get identifier and lookup errors synchronously; discovery failures are
downgraded to warnings; bootstrap and teardown failures are client-wide.
"""

from __future__ import annotations

from typing import Any


class BTClientError(Exception):
    """Base exception for all btclient errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize btclient error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(BTClientError):
    """Unsupported or malformed input."""


class TorrentError(ValidationError):
    """Torrent metadata could not be decoded."""


class MagnetError(ValidationError):
    """Magnet URI could not be parsed."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class DuplicateTorrentError(ValidationError):
    """A torrent with the same content identifier is already registered."""


class NotFoundError(BTClientError):
    """No torrent with the requested content identifier is registered."""


class NetworkError(BTClientError):
    """Network-related errors."""


class TrackerError(NetworkError):
    """Tracker communication errors."""


class DHTError(NetworkError):
    """DHT (Distributed Hash Table) errors."""


class DiscoveryWarning(BTClientError):
    """Non-fatal failure of one peer discovery source."""

    def __init__(
        self,
        message: str,
        source: str,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize discovery warning."""
        super().__init__(message, details)
        self.source = source
        self.cause = cause


class BootstrapError(BTClientError):
    """A client bootstrap task failed."""

    def __init__(
        self, message: str, task: str, details: dict[str, Any] | None = None
    ):
        """Initialize bootstrap error."""
        super().__init__(message, details)
        self.task = task


class TeardownError(BTClientError):
    """One or more teardown tasks failed."""

    def __init__(
        self,
        message: str,
        errors: list[BaseException],
        details: dict[str, Any] | None = None,
    ):
        """Initialize teardown error."""
        super().__init__(message, details)
        self.errors = errors

    @property
    def first(self) -> BaseException | None:
        """First failure observed during the fan-in."""
        return self.errors[0] if self.errors else None


class ClientStateError(BTClientError):
    """Operation is not permitted in the client's current state."""
