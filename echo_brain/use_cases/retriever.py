from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from echo_brain.domain.models import ScoredMemory
from echo_brain.ports.memory_store import MemoryStore


@dataclass
class Retriever:
    store: MemoryStore
    top_k: int = 8
    min_score: float = 0.2

    def retrieve(
        self,
        user_id: str,
        query_vector: Sequence[float],
        *,
        limit: Optional[int] = None,
    ) -> List[ScoredMemory]:
        """Пустой список: нормальный ответ "ничего релевантного", не ошибка."""
        k = self.top_k if limit is None else min(self.top_k, int(limit))
        if k <= 0:
            return []
        return self.store.search(user_id, query_vector, k, self.min_score)
