"""Exceptions raised by the report retrieval core."""
from __future__ import annotations


class RetrievalError(RuntimeError):
    """Base class for every failure surfaced by the retrieval subsystem."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ProviderUnavailableError(RetrievalError):
    """Raised when the embedding backend cannot be reached or initialised."""


class EmbeddingError(RetrievalError):
    """Raised when a single embedding call fails."""


class RateLimitedError(EmbeddingError):
    """Raised when the embedding backend asks the caller to slow down."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.retry_after = retry_after


class EmbeddingTimeoutError(EmbeddingError):
    """Raised when an embedding call exceeds the configured timeout."""


class EmbeddingDimensionError(RetrievalError):
    """Raised when two vectors that must be compared have different lengths."""


class CorpusSourceError(RetrievalError):
    """Raised when the report corpus cannot be opened or read."""


class CorpusParseError(RetrievalError):
    """Raised for a corpus line that is not a usable report record."""

    def __init__(self, message: str, *, line_number: int, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.line_number = line_number


class NoEmbeddingsGeneratedError(RetrievalError):
    """Raised when a corpus load finishes without a single embedded report."""


class NotLoadedError(RetrievalError):
    """Raised when a query arrives before the corpus has been loaded."""


class InvalidQueryError(RetrievalError):
    """Raised for empty or whitespace-only queries."""


class EmptyIndexError(RetrievalError):
    """Raised when a loaded corpus holds no report with an embedding."""


__all__ = [
    "CorpusParseError",
    "CorpusSourceError",
    "EmbeddingDimensionError",
    "EmbeddingError",
    "EmbeddingTimeoutError",
    "EmptyIndexError",
    "InvalidQueryError",
    "NoEmbeddingsGeneratedError",
    "NotLoadedError",
    "ProviderUnavailableError",
    "RateLimitedError",
    "RetrievalError",
]
