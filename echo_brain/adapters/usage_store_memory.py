from __future__ import annotations

from threading import Lock
from typing import Dict, Optional, Tuple

from echo_brain.ports.usage_store import UsageStore


class InMemoryUsageStore(UsageStore):
    """Счётчики в памяти процесса. Проверка и инкремент под одним локом."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._values: Dict[Tuple[str, str, str], int] = {}

    def try_increment(
        self,
        user_id: str,
        counter: str,
        period: str,
        limit: Optional[int],
        amount: int = 1,
    ) -> bool:
        key = (user_id, counter, period)
        with self._lock:
            cur = self._values.get(key, 0)
            if limit is not None and cur + amount > limit:
                return False
            self._values[key] = cur + amount
            return True

    def decrement(self, user_id: str, counter: str, period: str, amount: int = 1) -> None:
        key = (user_id, counter, period)
        with self._lock:
            self._values[key] = max(0, self._values.get(key, 0) - amount)

    def get(self, user_id: str, counter: str, period: str) -> int:
        with self._lock:
            return self._values.get((user_id, counter, period), 0)
