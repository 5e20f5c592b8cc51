from __future__ import annotations

import hashlib
import math
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import List
from collections.abc import Sequence

from echo_brain.ports.embeddings import Embedder

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def _tokens(text: str) -> List[str]:
    return _WORD_RE.findall(unicodedata.normalize("NFKC", text or "").casefold())


def _bucket(token: str, dim: int) -> tuple[int, float]:
    h = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    idx = int.from_bytes(h[:4], "little") % dim
    sign = 1.0 if h[4] & 1 else -1.0
    return idx, sign


@dataclass
class HashingEmbedder(Embedder):
    """
    Офлайн-эмбеддер на feature hashing: слово -> (корзина, знак), вес 1 + log(tf),
    вектор L2-нормирован. Детерминирован между процессами, поэтому годится
    как бэкенд по умолчанию и для тестов. Общие слова дают положительный косинус,
    тексты без общих слов ~ 0 (с точностью до коллизий корзин).
    """
    _dim: int = 256

    @property
    def dim(self) -> int:
        return self._dim

    def _vector(self, text: str) -> List[float]:
        vec = [0.0] * self._dim
        for tok, tf in Counter(_tokens(text)).items():
            idx, sign = _bucket(tok, self._dim)
            vec[idx] += sign * (1.0 + math.log(tf))
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec] if norm > 0.0 else vec

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._vector(t) for t in texts]
