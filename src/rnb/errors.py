"""Exceptions raised by the notebook archive and execution layers."""
from __future__ import annotations


class NotebookError(RuntimeError):
    """Base class for failures that abort a notebook operation."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class NotFoundError(NotebookError):
    """Raised when a source document, archive or cache path does not exist."""


class MalformedDocumentError(NotebookError):
    """Raised when chunk boundaries cannot be resolved against the document."""


class RenderError(NotebookError):
    """Raised when the document renderer fails."""


class UnresolvedChunkError(NotebookError):
    """Raised when a chunk placeholder has no matching cache data."""


class MissingManifestError(NotebookError):
    """Raised when an archive lacks its cache manifest or source marker."""


class DecodeError(NotebookError):
    """Raised when an archive payload cannot be decoded."""


class AmbiguousResourceError(NotebookError):
    """Raised when an ``@attribute`` reference does not match exactly one element."""


class ChunkOptionsError(NotebookError):
    """Raised when chunk option text declares a known option with the wrong type."""


class ExecutionContextError(NotebookError):
    """Raised when the live execution context would be installed twice."""


class NewerOutputError(NotebookError):
    """Raised when extracting a source would overwrite a file newer than the archive."""


ARCHIVE_FORMAT_ERRORS: tuple[type[NotebookError], ...] = (
    MalformedDocumentError,
    UnresolvedChunkError,
    MissingManifestError,
    DecodeError,
    AmbiguousResourceError,
)


__all__ = [
    "ARCHIVE_FORMAT_ERRORS",
    "AmbiguousResourceError",
    "ChunkOptionsError",
    "DecodeError",
    "ExecutionContextError",
    "MalformedDocumentError",
    "MissingManifestError",
    "NewerOutputError",
    "NotFoundError",
    "NotebookError",
    "RenderError",
    "UnresolvedChunkError",
]
