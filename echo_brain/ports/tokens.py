from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from echo_brain.domain.models import Message


@runtime_checkable
class TokenCounter(Protocol):
    """Считает токены для бюджета контекста синтезатора."""

    def count_text(self, text: str) -> int:
        ...

    def count_messages(self, messages: Sequence[Message]) -> int:
        ...
