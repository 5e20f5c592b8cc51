from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from echo_brain.domain.errors import GenerationError
from echo_brain.domain.models import Message
from echo_brain.ports.llm import LLMClient

log = logging.getLogger("echo_brain.intelligence")

SUMMARY_FALLBACK_CHARS = 200
MAX_CONCEPTS = 7
HEURISTIC_CONCEPTS = 5
# в промпт идёт только начало текста: на сводку хватает
PROMPT_CONTENT_CHARS = 8000

_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)
_WORD_RE = re.compile(r"\w+", re.UNICODE)

_PROMPT = (
    "Analyze the following content and provide:\n"
    "1. A concise 2-3 sentence summary\n"
    "2. 5-7 key concepts or topics mentioned\n\n"
    "Content: {content}\n\n"
    "Respond in JSON format:\n"
    '{{"summary": "2-3 sentence summary here", "concepts": ["concept1", "concept2"]}}'
)


@dataclass(frozen=True)
class Intelligence:
    summary: str
    key_concepts: Tuple[str, ...] = ()


def _fallback_summary(text: str) -> str:
    return text[:SUMMARY_FALLBACK_CHARS] + "..." if len(text) > SUMMARY_FALLBACK_CHARS else text


def heuristic_intelligence(text: str) -> Intelligence:
    """Первые три предложения + первые длинные (>6 символов) слова как понятия."""
    sentences = [s.strip() for s in text.split(".") if s.strip()]
    summary = ". ".join(sentences[:3]).strip()

    concepts: List[str] = []
    for word in _WORD_RE.findall(text.lower()):
        if len(word) > 6 and word not in concepts:
            concepts.append(word)
            if len(concepts) == HEURISTIC_CONCEPTS:
                break

    return Intelligence(summary=summary or _fallback_summary(text), key_concepts=tuple(concepts))


def parse_intelligence(raw: str, text: str) -> Optional[Intelligence]:
    found = _JSON_RE.search(raw or "")
    if not found:
        return None
    try:
        data = json.loads(found.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    summary = data.get("summary")
    concepts = data.get("concepts")
    return Intelligence(
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else _fallback_summary(text),
        key_concepts=tuple(
            c.strip() for c in (concepts if isinstance(concepts, list) else []) if isinstance(c, str) and c.strip()
        )[:MAX_CONCEPTS],
    )


@dataclass
class IntelligenceExtractor:
    """
    Сводка и ключевые понятия для новой памяти.
    Модель спрашиваем один раз без повторов; сбой или не-JSON -> эвристика.
    llm=None -> сразу эвристика.
    """
    llm: Optional[LLMClient] = None
    max_output_tokens: int = 300

    def extract(self, text: str) -> Intelligence:
        if self.llm is None:
            return heuristic_intelligence(text)

        messages = [Message(role="user", content=_PROMPT.format(content=text[:PROMPT_CONTENT_CHARS]))]
        try:
            resp = self.llm.generate(messages, max_output_tokens=self.max_output_tokens)
        except GenerationError as e:
            log.warning("intelligence generation failed, using heuristics: %s", e)
            return heuristic_intelligence(text)

        parsed = parse_intelligence(resp.text, text)
        if parsed is None:
            log.info("intelligence response is not JSON, using heuristics")
            return heuristic_intelligence(text)
        return parsed
