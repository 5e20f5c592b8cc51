from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class UsageStore(Protocol):
    """
    Счётчики квот по ключу (user_id, counter, period).
    try_increment: единственная условная операция: увеличить, если value + amount <= limit.
    Никакого read-then-write снаружи.
    """

    def try_increment(
        self,
        user_id: str,
        counter: str,
        period: str,
        limit: Optional[int],
        amount: int = 1,
    ) -> bool:
        ...

    def decrement(self, user_id: str, counter: str, period: str, amount: int = 1) -> None:
        ...

    def get(self, user_id: str, counter: str, period: str) -> int:
        ...
