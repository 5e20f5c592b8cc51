from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Any, List, Optional, Sequence

from echo_brain.domain.errors import EmbeddingServiceError
from echo_brain.ports.embeddings import Embedder


@dataclass
class SentenceTransformerEmbedder(Embedder):
    """
    Локальная модель sentence-transformers. Грузится при первом обращении
    (один раз на процесс), векторы нормированы под косинус.
    """
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: Optional[str] = None
    batch_size: int = 32

    _model: Any = field(default=None, init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def _load(self) -> Any:
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer
                try:
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                except (OSError, ValueError) as e:
                    raise EmbeddingServiceError(f"Cannot load embedding model {self.model_name}: {e}") from e
            return self._model

    @property
    def dim(self) -> int:
        return int(self._load().get_sentence_embedding_dimension() or 0)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        model = self._load()
        try:
            vecs = model.encode(list(texts), batch_size=self.batch_size, normalize_embeddings=True)
        except (RuntimeError, ValueError) as e:
            raise EmbeddingServiceError(f"sentence-transformers encode failed: {e}") from e
        return [[float(x) for x in v] for v in vecs]
