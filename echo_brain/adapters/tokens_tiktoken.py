from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import tiktoken

from echo_brain.domain.models import Message
from echo_brain.ports.tokens import TokenCounter


@dataclass
class TiktokenTokenCounter(TokenCounter):
    """
    Точный счёт для бюджета контекста синтезатора.
    model задан -> кодировка этой модели; неизвестная модель -> encoding_name.
    """
    encoding_name: str = "cl100k_base"
    model: Optional[str] = None
    tokens_per_message: int = 3

    _enc: Any = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.model:
            try:
                self._enc = tiktoken.encoding_for_model(self.model)
                return
            except KeyError:
                pass
        self._enc = tiktoken.get_encoding(self.encoding_name)

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text, disallowed_special=()))

    def count_messages(self, messages: Sequence[Message]) -> int:
        return sum(self.tokens_per_message + self.count_text(m.content) for m in messages)
