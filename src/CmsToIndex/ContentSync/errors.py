"""Error taxonomy for content synchronisation.

Responsibilities
----------------
- Define lightweight exception types that carry the repository path or URL
  involved, so log lines stay actionable.
- Keep the hierarchy shallow: everything derives from :class:`ContentSyncError`
  so entry points can absorb engine failures with a single ``except`` clause.

Design Notes
------------
- Fetch failures are raised inside :mod:`fetch` and converted to "not found"
  before they leave :meth:`RepositoryFetcher.fetch`.
- Configuration problems are reported as :class:`ConfigurationError` (a
  ``ValueError``) by the loader and are the only failures that propagate
  to callers.
"""

from __future__ import annotations

from typing import Any

__all__ = (
    "ContentSyncError",
    "FetchError",
    "ExtensionError",
    "StrategyExecutionError",
    "UnknownSourceError",
    "ConfigurationError",
)


class ContentSyncError(Exception):
    """Base class for engine failures."""

    def __init__(
        self, message: str, *, path: str | None = None, details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.path = path
        self.details = details or {}


class FetchError(ContentSyncError):
    """Raised when a repository document cannot be retrieved or decoded."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.url = url
        self.status_code = status_code


class ExtensionError(ContentSyncError):
    """Raised when a registered extension fails while resolving an attribute."""

    def __init__(self, message: str, *, extension: str, path: str | None = None):
        super().__init__(message, path=path)
        self.extension = extension


class StrategyExecutionError(ContentSyncError):
    """Raised when a traversal strategy cannot complete a fan-out."""


class UnknownSourceError(ContentSyncError):
    """Raised when a run names a source that is not configured."""


class ConfigurationError(ContentSyncError, ValueError):
    """Raised by the configuration loader for unreadable or invalid settings."""
