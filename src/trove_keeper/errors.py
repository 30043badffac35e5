"""
Error taxonomy for trove-keeper.

Every error records the locator, path or machine name it concerns so
callers can act on it without re-deriving context.
"""

from datetime import datetime, timezone
from pathlib import Path


class TroveError(Exception):
    """Base exception for all trove-keeper errors."""

    def __init__(
        self,
        message: str,
        *,
        locator: str | None = None,
        path: Path | None = None,
        machine_name: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.locator = locator
        self.path = path
        self.machine_name = machine_name
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)


class TransportError(TroveError):
    """Raised when a locator cannot be fetched."""

    def __init__(
        self,
        message: str,
        *,
        locator: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, locator=locator, original_error=original_error)
        self.status_code = status_code


class ParseError(TroveError):
    """Raised when a payload is malformed or misses expected structure."""

    pass


class FilesystemError(TroveError):
    """Raised on missing directories, permission or write failures."""

    pass


class StaleFeedRace(TroveError):
    """Raised when the catalog is still expired after the bounded refresh."""

    def __init__(
        self,
        message: str,
        *,
        locator: str | None = None,
        expires_at: datetime | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, locator=locator)
        self.expires_at = expires_at
        self.attempts = attempts


class UnknownGameError(TroveError):
    """Raised when a machine name has no library record."""

    pass
