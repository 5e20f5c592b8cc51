from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PlanResolver(Protocol):
    """user_id -> имя тарифа (free | pro | student_pro)."""

    def tier_for(self, user_id: str) -> str:
        ...
