from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import requests

from echo_brain.domain.errors import GenerationError
from echo_brain.domain.models import Message
from echo_brain.ports.llm import LLMClient, LLMResponse


def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


def _answer_text(data: Dict[str, Any]) -> str:
    msg = data.get("message")
    if isinstance(msg, dict) and (msg.get("content") or "").strip():
        return msg["content"].strip()
    return (data.get("response") or "").strip()


@dataclass
class OllamaLLMClient(LLMClient):
    """POST {base_url}/api/chat без стриминга. Таймаут, не-2xx и пустой ответ -> GenerationError."""
    base_url: str = "http://127.0.0.1:11434"
    model: str = "llama3.1:8b"
    temperature: float = 0.2
    timeout_s: float = 120.0

    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = _strip_trailing_slash(self.base_url)
        if self.session is None:
            self.session = requests.Session()

    def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        assert self.session is not None

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content or ""} for m in messages],
            "stream": False,
            "options": {"temperature": float(self.temperature), "num_predict": int(max_output_tokens)},
        }

        try:
            r = self.session.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json() if r.content else {}
        except requests.Timeout as e:
            raise GenerationError(f"Generation timed out after {self.timeout_s}s") from e
        except (requests.RequestException, ValueError) as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        text = _answer_text(data if isinstance(data, dict) else {})
        if not text:
            raise GenerationError(f"Model {self.model} returned an empty answer")

        return LLMResponse(
            text=text,
            usage={
                "input_tokens": int(data.get("prompt_eval_count") or 0),
                "output_tokens": int(data.get("eval_count") or 0),
            },
        )
