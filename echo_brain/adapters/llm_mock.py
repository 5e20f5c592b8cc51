from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from echo_brain.domain.models import Message
from echo_brain.ports.llm import LLMClient, LLMResponse

_CONTENT_RE = re.compile(r"^Content: (.*)$", re.MULTILINE)


def _last_user(messages: Sequence[Message]) -> Optional[Message]:
    return next((m for m in reversed(messages) if m.role == "user"), None)


class EchoMockLLM(LLMClient):
    """Без сети: пересказывает первую память из контекста."""

    def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        last_user = _last_user(messages)
        prompt = last_user.content if last_user else ""
        found = _CONTENT_RE.search(prompt)
        body = found.group(1).strip() if found else ""
        text = f"[mock] From your memories: {body}" if body else "[mock] No memories in context."
        limit = max(20, max_output_tokens * 4)
        if len(text) > limit:
            text = text[: limit - 3] + "..."
        return LLMResponse(text=text, usage={"input_tokens": 0, "output_tokens": 0})


@dataclass
class ScriptedMockLLM(LLMClient):
    rules: Dict[str, str]

    def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        last_user = _last_user(messages)
        prompt = (last_user.content if last_user else "").lower()

        for k, v in self.rules.items():
            if k.lower() in prompt:
                return LLMResponse(text=v, usage={"input_tokens": 0, "output_tokens": 0})

        return LLMResponse(text="[mock] Nothing to say.", usage={"input_tokens": 0, "output_tokens": 0})
