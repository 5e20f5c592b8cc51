from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Budget:
    """Окно модели: вход = контекст - резерв под ответ - запас."""
    max_context_tokens: int
    reserve_output_tokens: int
    safety_margin_tokens: int = 32

    @property
    def max_input_tokens(self) -> int:
        value = self.max_context_tokens - self.reserve_output_tokens - self.safety_margin_tokens
        return max(0, int(value))

    def remaining(self, used_tokens: int) -> int:
        return max(0, self.max_input_tokens - int(used_tokens))
