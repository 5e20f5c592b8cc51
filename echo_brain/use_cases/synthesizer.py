from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from echo_brain.domain.models import (
    AnswerObject,
    Citation,
    MemoryObject,
    Message,
    ScoredMemory,
    SuggestedAction,
    TimelineEntry,
    utcnow,
)
from echo_brain.ports.llm import LLMClient
from echo_brain.ports.tokens import TokenCounter
from echo_brain.use_cases.budget import Budget
from echo_brain.use_cases.retry import RetryPolicy, call_with_retry

log = logging.getLogger("echo_brain.synthesizer")

NO_INFO_ANSWER = "I couldn't find anything in your saved memories about that."
NO_INFO_NOTE = "I couldn't find any relevant memories in your saved content."

SYSTEM_PROMPT = (
    "You are Echo, a personal memory assistant. Answer the user's question using only the "
    "saved memories provided. Do not invent or add details that are not in the memories. "
    "If the memories do not contain the answer, say so. Refer to memories as [Memory n]."
)

SNIPPET_CHARS = 200
_BLOCK_SEPARATOR = "\n---\n"


def _format_block(n: int, memory: MemoryObject, content: Optional[str] = None) -> str:
    source = memory.source_title or memory.source_url or memory.source_type
    return (
        f"[Memory {n}]\n"
        f"Source: {source}\n"
        f"Date: {memory.created_at.isoformat()}\n"
        f"Content: {memory.content if content is None else content}"
    )


def _user_prompt(query: str, context: str) -> str:
    return (
        f"Question: {query}\n\n"
        f"Saved memories:\n{context}\n\n"
        "Answer the question using only these memories."
    )


def _snippet(text: str) -> str:
    return text if len(text) <= SNIPPET_CHARS else text[: SNIPPET_CHARS - 3] + "..."


def uncertainty_note(confidence: float) -> Optional[str]:
    if confidence < 0.3:
        return "I found very limited information in your saved memories. This answer may not be comprehensive."
    if confidence < 0.6:
        return "I found some relevant information, but your saved memories on this topic are limited."
    return None


def suggested_actions(
    query: str,
    cited: Sequence[MemoryObject],
    *,
    timeline: bool,
    timeline_allowed: bool,
) -> Tuple[SuggestedAction, ...]:
    actions = [SuggestedAction(label="Ask follow-up", action_type="expand", payload={"query": query})]
    if not timeline and timeline_allowed:
        actions.append(SuggestedAction(
            label="View timeline",
            action_type="expand",
            payload={"query": query, "intent": "timeline"},
        ))
    if cited:
        actions.append(SuggestedAction(
            label="Revisit sources",
            action_type="open_source",
            payload={"memory_ids": [m.id for m in cited[:3]]},
        ))
    return tuple(actions)


def build_timeline(memories: Sequence[MemoryObject]) -> Tuple[TimelineEntry, ...]:
    """
    Хронология (старые -> новые). first_encounter: самая ранняя память среди тех,
    что делят с ней хотя бы одно ключевое понятие; без понятий память сама себе тема.
    """
    ordered = sorted(memories, key=lambda m: (m.created_at, m.id))
    entries: List[TimelineEntry] = []
    for m in ordered:
        concepts = set(m.key_concepts)
        first = next((o for o in ordered if concepts & set(o.key_concepts)), m)
        entries.append(TimelineEntry(
            memory_id=m.id,
            date=m.created_at,
            role="first_encounter" if first.id == m.id else "refinement",
            description=m.summary or _snippet(m.content),
        ))
    return tuple(entries)


@dataclass
class AnswerSynthesizer:
    llm: LLMClient
    counter: TokenCounter
    budget: Budget
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    system_prompt: str = SYSTEM_PROMPT

    def no_information(
        self,
        query: str,
        *,
        user_id: str,
        timeline: bool = False,
        timeline_allowed: bool = True,
    ) -> AnswerObject:
        return AnswerObject(
            id=uuid4().hex,
            user_id=user_id,
            query=query,
            answer_text=NO_INFO_ANSWER,
            confidence=0.0,
            uncertainty_notes=NO_INFO_NOTE,
            suggested_actions=suggested_actions(query, (), timeline=timeline, timeline_allowed=timeline_allowed),
            timeline=() if timeline else None,
            created_at=utcnow(),
        )

    def _fit(self, memory: MemoryObject, available: int) -> Optional[str]:
        """Самый длинный префикс content, с которым блок укладывается в available токенов."""
        if self.counter.count_text(_format_block(1, memory, content="")) > available:
            return None
        lo, hi = 0, len(memory.content)
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self.counter.count_text(_format_block(1, memory, content=memory.content[:mid])) <= available:
                lo = mid
            else:
                hi = mid - 1
        return memory.content[:lo] if lo > 0 else None

    def pack(self, query: str, candidates: Sequence[ScoredMemory]) -> tuple[List[ScoredMemory], List[str]]:
        """
        Жадно набираем блоки по убыванию score, пока влезают в бюджет.
        Первый не влезший блок останавливает набор: выпадают самые слабые.
        Если не влез даже лучший, берём его префикс, подогнанный счётчиком под бюджет.
        Не помещается и префикс -> пустой результат.
        """
        ordered = sorted(candidates, key=lambda c: (c.score, c.memory.created_at), reverse=True)
        base = [Message(role="system", content=self.system_prompt), Message(role="user", content=_user_prompt(query, ""))]
        available = self.budget.remaining(self.counter.count_messages(base))
        sep_cost = self.counter.count_text(_BLOCK_SEPARATOR)

        used: List[ScoredMemory] = []
        blocks: List[str] = []
        spent = 0
        for c in ordered:
            block = _format_block(len(blocks) + 1, c.memory)
            cost = self.counter.count_text(block) + (sep_cost if blocks else 0)
            if spent + cost > available:
                break
            used.append(c)
            blocks.append(block)
            spent += cost

        if not blocks and ordered:
            top = ordered[0]
            content = self._fit(top.memory, available)
            if content is not None:
                used.append(top)
                blocks.append(_format_block(1, top.memory, content=content))

        return used, blocks

    def synthesize(
        self,
        query: str,
        candidates: Sequence[ScoredMemory],
        *,
        user_id: str,
        timeline: bool = False,
        timeline_allowed: bool = True,
    ) -> AnswerObject:
        if not candidates:
            return self.no_information(query, user_id=user_id, timeline=timeline, timeline_allowed=timeline_allowed)

        used, blocks = self.pack(query, candidates)
        if not used:
            log.info("context budget too small for any of %d candidates", len(candidates))
            return self.no_information(query, user_id=user_id, timeline=timeline, timeline_allowed=timeline_allowed)

        messages = [
            Message(role="system", content=self.system_prompt),
            Message(role="user", content=_user_prompt(query, _BLOCK_SEPARATOR.join(blocks))),
        ]

        resp = call_with_retry(
            lambda: self.llm.generate(messages, max_output_tokens=self.budget.reserve_output_tokens),
            policy=self.retry,
            what="generate",
        )

        scores = [c.score for c in used]
        confidence = min(1.0, max(0.0, sum(scores) / len(scores)))
        if len(used) < len(candidates):
            log.info("context budget dropped %d of %d candidates", len(candidates) - len(used), len(candidates))

        cited = [c.memory for c in used]
        return AnswerObject(
            id=uuid4().hex,
            user_id=user_id,
            query=query,
            answer_text=resp.text,
            cited_memory_ids=tuple(m.id for m in cited),
            citations=tuple(
                Citation(
                    memory_id=c.memory.id,
                    score=c.score,
                    source_type=c.memory.source_type,
                    source_title=c.memory.source_title,
                    source_url=c.memory.source_url,
                    snippet=_snippet(c.memory.content),
                )
                for c in used
            ),
            confidence=confidence,
            uncertainty_notes=uncertainty_note(confidence),
            suggested_actions=suggested_actions(query, cited, timeline=timeline, timeline_allowed=timeline_allowed),
            timeline=build_timeline(cited) if timeline else None,
            created_at=utcnow(),
        )
