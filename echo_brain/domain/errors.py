from __future__ import annotations

from typing import Optional


class BrainError(Exception):
    """Базовая ошибка ядра. Граница (api/cli) мапит подклассы в сообщения."""


# --- access ---

class AccessError(BrainError):
    pass


class EntitlementError(AccessError):
    def __init__(self, reason: str, code: str):
        super().__init__(reason)
        self.reason = reason
        self.code = code


# --- validation: caller must fix the input, never retried ---

class ValidationError(BrainError):
    pass


class UnsupportedSourceError(ValidationError):
    def __init__(self, source_type: object):
        super().__init__(f"Unsupported source type: {source_type!r}")
        self.source_type = source_type


class ContentTooLargeError(ValidationError):
    def __init__(self, length: int, limit: int):
        super().__init__(f"Content is {length} chars, limit is {limit}")
        self.length = length
        self.limit = limit


class EmptyContentError(ValidationError):
    pass


class InvalidQueryError(ValidationError):
    pass


class ExtractionError(ValidationError):
    pass


# --- transient upstream: safe to retry ---

class TransientUpstreamError(BrainError):
    pass


class FetchError(TransientUpstreamError):
    def __init__(self, message: str, url: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class EmbeddingServiceError(TransientUpstreamError):
    pass


class GenerationError(TransientUpstreamError):
    pass


# --- storage ---

class StorageError(BrainError):
    pass
