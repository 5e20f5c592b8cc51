from __future__ import annotations

from collections.abc import Sequence
from typing import Optional, Protocol, runtime_checkable

from echo_brain.domain.models import MemoryObject, ScoredMemory


@runtime_checkable
class MemoryStore(Protocol):
    """
    Персистентное хранилище памятей с векторным поиском.
    Все чтения строго в рамках user_id. Метрика: косинусная близость.
    Порядок: score desc, затем created_at desc (свежее выше).
    """

    def write(self, memory: MemoryObject) -> None:
        ...

    def search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        k: int,
        min_score: float,
    ) -> list[ScoredMemory]:
        ...

    def get(self, user_id: str, memory_id: str) -> Optional[MemoryObject]:
        ...

    def count(self, user_id: str) -> int:
        ...

    def list_recent(self, user_id: str, limit: int) -> list[MemoryObject]:
        ...
