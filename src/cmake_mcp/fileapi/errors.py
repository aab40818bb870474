"""File API error types."""

from __future__ import annotations

from typing import Any


class FileApiError(Exception):
    """Reply documents could not be turned into a project model."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self), "type": type(self).__name__}
        if self.path:
            result["path"] = self.path
        return result


class DocumentFormatError(FileApiError):
    """A reply document is malformed or does not follow the expected schema."""


class UnresolvedReferenceError(FileApiError):
    """A reply document references a file that does not exist."""
