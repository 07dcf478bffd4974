from __future__ import annotations


class HighscoreError(Exception):
    """Base class for pipeline errors."""


class InvalidEventError(HighscoreError, ValueError):
    """Raised when a dispatch event does not carry a conforming score/name."""


class WriteConflictError(HighscoreError):
    """Raised when the proposal artifact changed since it was read."""


class ReviewExistsError(HighscoreError):
    """Raised when opening a review finds one already open for the slot."""


class ArbitrationConflictError(HighscoreError):
    """Raised when a run keeps losing write races and gives up."""


class RateLimitStoreError(HighscoreError):
    """Raised when the rate-limit store cannot be read or written."""


class GitHubAPIError(HighscoreError):
    """`status_code` is None when no response was received."""

    def __init__(self, status_code: int | None, message: str):
        if status_code is None:
            super().__init__(f"github api request failed: {message}")
        else:
            super().__init__(f"github api returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message
