"""Exception taxonomy for the RAG pipeline.

Each exception is raised at the seam where the problem is detected.  The
orchestrator decides which ones become fallback content, which ones become
a document ``error`` status and which ones reach the caller.
"""

from __future__ import annotations

from enum import Enum

#: Message shown to end users whenever answer generation fails.
SAFE_QUERY_ERROR_MESSAGE = "I encountered an error while generating your answer. Please try again."


class RAGError(Exception):
    """Base class for every error raised by :mod:`docchat`."""


class ExtractionCause(str, Enum):
    """Probable reason a document yielded no text."""

    TIMEOUT = "timeout"
    ENCRYPTED = "encrypted"
    IMAGE_ONLY = "image_only"
    CORRUPTED = "corrupted"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class ExtractionError(RAGError):
    """The document could not be turned into text."""

    def __init__(self, message: str, cause: ExtractionCause = ExtractionCause.UNKNOWN) -> None:
        super().__init__(message)
        self.cause = cause


class EmbeddingError(RAGError):
    """The embedding provider failed or returned an unusable response."""


class EmbeddingBatchError(EmbeddingError):
    """One batch of chunks could not be embedded.

    Non-fatal during ingestion: the chunks of the batch are kept without a
    vector.
    """

    def __init__(self, message: str, batch_start: int = 0, batch_size: int = 0) -> None:
        super().__init__(message)
        self.batch_start = batch_start
        self.batch_size = batch_size


class DimensionMismatchError(RAGError):
    """Two vectors of different length were compared or mixed in one store.

    This always points at an embedding-model misconfiguration and is never
    masked.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class QueryError(RAGError):
    """Answering a question failed.

    ``str(exc)`` carries the internal detail for logs; :attr:`user_message`
    is the only text that should reach an end user.
    """

    user_message = SAFE_QUERY_ERROR_MESSAGE


class InitializationError(RAGError):
    """The pipeline could not start (missing credentials, unreadable data)."""


class StoreSerializationError(RAGError):
    """A vector-store snapshot could not be decoded."""
