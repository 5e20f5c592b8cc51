from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from echo_brain.domain.errors import EmbeddingServiceError
from echo_brain.ports.embeddings import Embedder
from echo_brain.use_cases.retry import RetryPolicy, call_with_retry


@dataclass
class EmbeddingGenerator:
    """
    Один и тот же генератор для памятей и для запросов:
    векторы разных моделей/размерностей несравнимы.
    """
    embedder: Embedder
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def dim(self) -> int:
        return int(self.embedder.dim)

    def embed(self, text: str) -> Tuple[float, ...]:
        vectors = call_with_retry(lambda: self.embedder.embed([text]), policy=self.retry, what="embed")

        if len(vectors) != 1:
            raise EmbeddingServiceError(f"Embedder returned {len(vectors)} vectors for 1 text")

        vec = tuple(float(x) for x in vectors[0])
        dim = self.dim
        if dim > 0 and len(vec) != dim:
            raise EmbeddingServiceError(f"Vector dim mismatch: got {len(vec)} expected {dim}")
        return vec
