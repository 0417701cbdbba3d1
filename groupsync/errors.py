from __future__ import annotations


class DirectoryError(Exception):
    """Base class for failures reported by a directory adapter."""


class GroupLookupError(DirectoryError):
    """Zero or more than one group matched an identity."""

    def __init__(self, identity: str, match_count: int) -> None:
        self.identity = identity
        self.match_count = match_count
        if match_count == 0:
            message = f"No group found for '{identity}'."
        else:
            message = f"Identity '{identity}' is ambiguous: {match_count} groups matched."
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        return self.match_count == 0


class DirectoryUnavailableError(DirectoryError):
    """The directory backend could not be reached."""


class MutationError(DirectoryError):
    """The directory rejected an add or remove call."""


class DirectoryQueryError(DirectoryError):
    """The directory answered a search with a failure result."""
