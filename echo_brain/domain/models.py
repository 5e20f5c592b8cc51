from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional, Tuple

SourceType = Literal["note", "web", "pdf"]
SOURCE_TYPES: Tuple[str, ...] = ("note", "web", "pdf")

Role = Literal["system", "user", "assistant"]


def utcnow() -> datetime:
    """Всегда timezone-aware UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    role: Role
    content: str = ""


@dataclass(frozen=True)
class IngestOptions:
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    source_author: Optional[str] = None


@dataclass(frozen=True)
class NormalizedText:
    text: str
    source_type: SourceType
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    source_author: Optional[str] = None
    truncated: bool = False


@dataclass(frozen=True)
class MemoryObject:
    """
    Одна единица памяти пользователя. После создания не меняется:
    обновление = новая память, иначе индекс разойдётся с содержимым.
    """
    id: str
    user_id: str
    content: str
    embedding: Tuple[float, ...]
    source_type: SourceType
    content_hash: str
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    source_author: Optional[str] = None
    summary: str = ""
    key_concepts: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ScoredMemory:
    memory: MemoryObject
    score: float


@dataclass(frozen=True)
class Citation:
    memory_id: str
    score: float
    source_type: SourceType
    source_title: Optional[str] = None
    source_url: Optional[str] = None
    snippet: str = ""


ActionType = Literal["expand", "open_source"]
TimelineRole = Literal["first_encounter", "refinement"]


@dataclass(frozen=True)
class SuggestedAction:
    label: str
    action_type: ActionType
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TimelineEntry:
    memory_id: str
    date: datetime
    role: TimelineRole
    description: str = ""


@dataclass(frozen=True)
class AnswerObject:
    id: str
    user_id: str
    query: str
    answer_text: str
    cited_memory_ids: Tuple[str, ...] = ()
    citations: Tuple[Citation, ...] = ()
    confidence: float = 0.0
    uncertainty_notes: Optional[str] = None
    suggested_actions: Tuple[SuggestedAction, ...] = ()
    timeline: Optional[Tuple[TimelineEntry, ...]] = None
    created_at: datetime = field(default_factory=utcnow)
