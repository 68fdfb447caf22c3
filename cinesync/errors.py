"""
============================================================================
CINESYNC - Error Types
============================================================================
Exceptions raised inside one unit of work (a change-list page, a movie,
a batch). Drivers catch them at the unit boundary, log them and count the
unit as dropped in the run report; none of them stops the sync.
============================================================================
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all sync failures."""


class SourceFetchError(SyncError):
    """Raised when a TMDB request fails or returns an unusable response."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DecompositionError(SyncError):
    """Raised when a movie document cannot be split into relational rows."""


class RateLimitError(SyncError):
    """Raised when the rate limiter cannot admit a caller within its wait bound."""


class UnsupportedDatabaseError(SyncError):
    """Raised when the database dialect has no conflict-resolving insert."""
