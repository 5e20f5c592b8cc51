from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from echo_brain.ports.plans import PlanResolver


@dataclass
class StaticPlanResolver(PlanResolver):
    default_tier: str = "free"
    overrides: Dict[str, str] = field(default_factory=dict)

    def tier_for(self, user_id: str) -> str:
        return self.overrides.get(user_id, self.default_tier)
