"""Exceptions raised by the search and similarity engine."""


class BookmarkInsightsError(Exception):
    """Base exception for engine failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class IndexSnapshotError(BookmarkInsightsError):
    """Raised when a serialized search index cannot be restored.

    Covers both malformed payloads and snapshots written by a different
    schema version. Callers treat it as a cache miss and rebuild.
    """


class CacheVersionError(BookmarkInsightsError):
    """Raised when a cached similarity blob has an unexpected schema version."""

    def __init__(self, key: str, found: object, expected: int) -> None:
        self.key = key
        self.found = found
        self.expected = expected
        super().__init__(
            f"Cache entry {key!r} has schema version {found!r}, expected {expected}"
        )
