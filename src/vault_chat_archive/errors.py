"""Exception types raised by the archive."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for all archive errors."""


class StoreError(ArchiveError):
    """A document-store operation failed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class ResolutionError(ArchiveError):
    """The temp-image resolver was asked to do something it cannot."""


class SettingsError(ArchiveError):
    """The configuration file holds an invalid value."""
