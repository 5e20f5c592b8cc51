from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import List

from echo_brain.domain.models import MemoryObject, ScoredMemory


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Косинусная близость в [-1, 1]. Нулевой вектор -> 0.0."""
    if len(a) != len(b):
        raise ValueError(f"Vector dim mismatch: {len(a)} vs {len(b)}")
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return dot / (math.sqrt(na) * math.sqrt(nb))


def rank(
    candidates: Iterable[MemoryObject],
    query_vector: Sequence[float],
    *,
    k: int,
    min_score: float,
) -> List[ScoredMemory]:
    """
    Общий порядок выдачи для всех хранилищ:
    score desc -> created_at desc -> id (для стабильности).
    """
    if k <= 0:
        return []

    scored: List[ScoredMemory] = []
    for m in candidates:
        s = cosine(query_vector, m.embedding)
        if s >= min_score:
            scored.append(ScoredMemory(memory=m, score=s))

    scored.sort(key=lambda sm: sm.memory.id)
    scored.sort(key=lambda sm: (sm.score, sm.memory.created_at), reverse=True)
    return scored[:k]
