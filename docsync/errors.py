"""Exception hierarchy for docsync.

Every per-unit failure raised by the core derives from :class:`DocSyncError` so
the pipeline can isolate it to the unit that caused it.
"""

from __future__ import annotations

from pathlib import Path


class DocSyncError(RuntimeError):
    """Base class for errors attributable to a single documented unit."""


class ConfigError(DocSyncError):
    """Raised when the configuration file cannot be parsed."""


class MergeError(DocSyncError):
    """Raised when a document cannot be merged because its markers are malformed."""

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message)
        self.line = line


class UnbalancedProtectedRegion(MergeError):
    """An open marker has no close marker, or a close marker has no opener."""


class NestedProtectedRegion(MergeError):
    """An open marker appeared inside an already open protected region."""


class FingerprintInputInvalid(DocSyncError):
    """The structural summary handed to the fingerprinter violates its contract."""


class GenerationFailed(DocSyncError):
    """The content generator could not produce a body for a unit."""


class SourceParseError(DocSyncError):
    """A source file could not be turned into a structural summary."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class IoFailure(DocSyncError):
    """The document store failed to read or write a document."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


__all__ = [
    "ConfigError",
    "DocSyncError",
    "FingerprintInputInvalid",
    "GenerationFailed",
    "IoFailure",
    "MergeError",
    "NestedProtectedRegion",
    "SourceParseError",
    "UnbalancedProtectedRegion",
]
