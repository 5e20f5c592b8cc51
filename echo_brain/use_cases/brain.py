from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union
from uuid import uuid4

from echo_brain.domain.errors import InvalidQueryError, StorageError, UnsupportedSourceError
from echo_brain.domain.models import (
    SOURCE_TYPES,
    AnswerObject,
    IngestOptions,
    MemoryObject,
    ScoredMemory,
    TimelineEntry,
    utcnow,
)
from echo_brain.ports.memory_store import MemoryStore
from echo_brain.use_cases.embedding import EmbeddingGenerator
from echo_brain.use_cases.entitlements import EntitlementGate, Grant
from echo_brain.use_cases.intelligence import IntelligenceExtractor
from echo_brain.use_cases.normalizer import ContentNormalizer
from echo_brain.use_cases.retriever import Retriever
from echo_brain.use_cases.synthesizer import AnswerSynthesizer, build_timeline

log = logging.getLogger("echo_brain")


def _content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _size_hint(content: Union[str, bytes], source_type: str) -> int:
    """Размер входа в байтах для проверки лимита файла (web до fetch неизвестен -> 0)."""
    if isinstance(content, bytes):
        return len(content)
    if source_type == "note":
        return len(content.encode("utf-8"))
    return 0


def _ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


@dataclass
class Brain:
    """
    Единственная публичная поверхность ядра: ingest_memory и query_brain.
    Ошибки компонентов пробрасываются как есть, границе (api/cli) решать, что показать.
    """
    gate: EntitlementGate
    normalizer: ContentNormalizer
    embeddings: EmbeddingGenerator
    store: MemoryStore
    retriever: Retriever
    synthesizer: AnswerSynthesizer
    intelligence: IntelligenceExtractor = field(default_factory=IntelligenceExtractor)

    def _release(self, grant: Grant) -> None:
        try:
            self.gate.release(grant)
        except Exception:
            log.exception("failed to release %s quota for user=%s", grant.operation, grant.user_id)

    def ingest_memory(
        self,
        user_id: str,
        content: Union[str, bytes],
        source_type: str,
        options: Optional[IngestOptions] = None,
    ) -> MemoryObject:
        if source_type not in SOURCE_TYPES:
            raise UnsupportedSourceError(source_type)

        t0 = time.perf_counter()
        grant = self.gate.authorize(user_id, "ingest", size_bytes=_size_hint(content, source_type))

        committed = False
        try:
            normalized = self.normalizer.normalize(content, source_type, options)
            vector = self.embeddings.embed(normalized.text)
            intel = self.intelligence.extract(normalized.text)

            memory = MemoryObject(
                id=uuid4().hex,
                user_id=user_id,
                content=normalized.text,
                embedding=vector,
                source_type=normalized.source_type,
                content_hash=_content_hash(normalized.text),
                source_url=normalized.source_url,
                source_title=normalized.source_title,
                source_author=normalized.source_author,
                summary=intel.summary,
                key_concepts=intel.key_concepts,
                created_at=utcnow(),
            )
            self.store.write(memory)
            committed = True
        except BaseException:
            # до коммита: ничего не записано, квоту возвращаем
            if not committed:
                self._release(grant)
            raise

        log.info(json.dumps({
            "event": "ingest",
            "user_id": user_id,
            "memory_id": memory.id,
            "source_type": memory.source_type,
            "chars": len(memory.content),
            "concepts": len(memory.key_concepts),
            "truncated": normalized.truncated,
            "ms": _ms(t0),
        }, ensure_ascii=False))
        return memory

    def query_brain(self, user_id: str, query: str, *, timeline: bool = False) -> AnswerObject:
        q = (query or "").strip()
        if not q:
            raise InvalidQueryError("Query is empty")

        t0 = time.perf_counter()
        grant = self.gate.authorize(user_id, "query", timeline=timeline)

        try:
            vector = self.embeddings.embed(q)
            candidates = self.retriever.retrieve(user_id, vector, limit=grant.plan.vector_search_depth)
            self._check_scope(user_id, candidates)
            answer = self.synthesizer.synthesize(
                q,
                candidates,
                user_id=user_id,
                timeline=timeline,
                timeline_allowed=grant.plan.timeline_access,
            )
        except BaseException:
            self._release(grant)
            raise

        log.info(json.dumps({
            "event": "query",
            "user_id": user_id,
            "answer_id": answer.id,
            "candidates": len(candidates),
            "cited": len(answer.cited_memory_ids),
            "confidence": round(answer.confidence, 4),
            "timeline": timeline,
            "ms": _ms(t0),
        }, ensure_ascii=False))
        return answer

    def list_memories(self, user_id: str, limit: int = 50) -> List[MemoryObject]:
        """Последние памяти пользователя; неизвестный тариф -> EntitlementError."""
        self.gate.plan_for(user_id)
        return self.store.list_recent(user_id, limit)

    def timeline(self, user_id: str, limit: int = 50) -> Tuple[TimelineEntry, ...]:
        self.gate.require_timeline(user_id)
        return build_timeline(self.store.list_recent(user_id, limit))

    @staticmethod
    def _check_scope(user_id: str, candidates: List[ScoredMemory]) -> None:
        foreign = [c.memory.id for c in candidates if c.memory.user_id != user_id]
        if foreign:
            raise StorageError(f"Memory store returned {len(foreign)} memories outside user scope")
