from __future__ import annotations

from dataclasses import dataclass

from echo_brain.domain.errors import (
    AccessError,
    BrainError,
    ContentTooLargeError,
    EmbeddingServiceError,
    FetchError,
    GenerationError,
    StorageError,
    TransientUpstreamError,
    UnsupportedSourceError,
    ValidationError,
)


@dataclass(frozen=True)
class ErrorView:
    status: int
    kind: str
    message: str


def describe_error(exc: BrainError) -> ErrorView:
    """
    Чистое отображение ошибок ядра в то, что видит пользователь.
    Таксономия ядра от формулировок не зависит.
    """
    if isinstance(exc, AccessError):
        return ErrorView(403, "access_denied", f"Access denied: {exc}")

    if isinstance(exc, UnsupportedSourceError):
        return ErrorView(415, "unsupported_source", f"Unsupported content type: {exc.source_type}")
    if isinstance(exc, ContentTooLargeError):
        return ErrorView(413, "too_large", f"Content is too large ({exc.length} characters, limit {exc.limit})")
    if isinstance(exc, ValidationError):
        return ErrorView(400, "invalid_input", str(exc))

    if isinstance(exc, FetchError):
        return ErrorView(502, "fetch_failed", f"Couldn't load {exc.url or 'the page'}. Check the link and try again.")
    if isinstance(exc, EmbeddingServiceError):
        return ErrorView(503, "embedding_unavailable", "The memory index is temporarily unavailable. Please try again.")
    if isinstance(exc, GenerationError):
        return ErrorView(503, "generation_unavailable", "Answer generation is temporarily unavailable. Please try again.")
    if isinstance(exc, TransientUpstreamError):
        return ErrorView(503, "unavailable", "Service temporarily unavailable. Please try again.")

    if isinstance(exc, StorageError):
        return ErrorView(500, "storage_error", "Memory storage failed. Please try again later.")

    return ErrorView(500, "internal_error", "Unexpected error.")
