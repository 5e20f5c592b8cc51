from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from echo_brain.domain.errors import EmbeddingServiceError
from echo_brain.ports.embeddings import Embedder


def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


@dataclass
class OllamaEmbedder(Embedder):
    """
    POST {base_url}/api/embed -> {"embeddings": [[...], ...]}
    dim фиксируется конфигом: модель с другой размерностью несовместима со старыми векторами.
    """
    base_url: str = "http://127.0.0.1:11434"
    model: str = "nomic-embed-text"
    dimension: int = 768
    timeout_s: float = 30.0

    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = _strip_trailing_slash(self.base_url)
        if self.session is None:
            self.session = requests.Session()

    @property
    def dim(self) -> int:
        return self.dimension

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        assert self.session is not None

        payload: Dict[str, Any] = {"model": self.model, "input": list(texts)}
        try:
            r = self.session.post(f"{self.base_url}/api/embed", json=payload, timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json() if r.content else {}
        except requests.Timeout as e:
            raise EmbeddingServiceError(f"Embedding request timed out after {self.timeout_s}s") from e
        except (requests.RequestException, ValueError) as e:
            raise EmbeddingServiceError(f"Embedding request failed: {e}") from e

        vecs = data.get("embeddings")
        if not isinstance(vecs, list):
            raise EmbeddingServiceError("Embedding response has no 'embeddings' list")
        if not all(isinstance(v, list) for v in vecs):
            raise EmbeddingServiceError("Embedding response has a non-list vector")
        try:
            return [[float(x) for x in v] for v in vecs]
        except (TypeError, ValueError) as e:
            raise EmbeddingServiceError(f"Embedding response has non-numeric values: {e}") from e
