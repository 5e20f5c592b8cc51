from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional, Tuple

from echo_brain.domain.errors import EntitlementError
from echo_brain.domain.models import utcnow
from echo_brain.ports.plans import PlanResolver
from echo_brain.ports.usage_store import UsageStore

log = logging.getLogger("echo_brain.entitlements")

Operation = Literal["ingest", "query"]

_MB = 1024 * 1024


@dataclass(frozen=True)
class Plan:
    """None в лимите = без ограничения."""
    tier: str
    monthly_ingest_limit: Optional[int]
    memory_limit: Optional[int]
    max_file_size_mb: float
    vector_search_depth: int
    monthly_query_limit: Optional[int]
    timeline_access: bool = True
    answer_confidence_detail: bool = True


PLANS: Dict[str, Plan] = {
    "free": Plan(
        tier="free",
        monthly_ingest_limit=100,
        memory_limit=50,
        max_file_size_mb=5,
        vector_search_depth=10,
        monthly_query_limit=500,
        answer_confidence_detail=False,
    ),
    "pro": Plan(
        tier="pro",
        monthly_ingest_limit=5000,
        memory_limit=None,
        max_file_size_mb=50,
        vector_search_depth=50,
        monthly_query_limit=None,
    ),
    "student_pro": Plan(
        tier="student_pro",
        monthly_ingest_limit=1500,
        memory_limit=2000,
        max_file_size_mb=25,
        vector_search_depth=40,
        monthly_query_limit=5000,
    ),
}


def month_period(now: datetime) -> str:
    return now.strftime("%Y-%m")


@dataclass(frozen=True)
class Grant:
    """Разрешение на одну операцию + какие счётчики она заняла (для release)."""
    user_id: str
    operation: Operation
    plan: Plan
    consumed: Tuple[Tuple[str, str], ...] = ()


@dataclass
class EntitlementGate:
    """
    Проверяется до любой дорогой работы (эмбеддинги, LLM, fetch).
    Квота тратится через условный инкремент стора, а не read-then-write.
    """
    usage: UsageStore
    plans: PlanResolver
    catalog: Dict[str, Plan] = field(default_factory=lambda: dict(PLANS))
    clock: Callable[[], datetime] = utcnow

    def plan_for(self, user_id: str) -> Plan:
        tier = self.plans.tier_for(user_id)
        plan = self.catalog.get(tier)
        if plan is None:
            raise EntitlementError(f"Unknown plan '{tier}'", "UNKNOWN_PLAN")
        return plan

    def require_timeline(self, user_id: str) -> Plan:
        plan = self.plan_for(user_id)
        if not plan.timeline_access:
            raise EntitlementError(f"Timeline is not available on the {plan.tier} plan", "TIMELINE_NOT_AVAILABLE")
        return plan

    def authorize(
        self,
        user_id: str,
        operation: Operation,
        *,
        size_bytes: int = 0,
        timeline: bool = False,
    ) -> Grant:
        plan = self.require_timeline(user_id) if timeline else self.plan_for(user_id)
        period = month_period(self.clock())

        if operation == "ingest":
            size_mb = max(0, int(size_bytes)) / _MB
            if size_mb > plan.max_file_size_mb:
                raise EntitlementError(
                    f"File size {size_mb:.2f}MB exceeds limit of {plan.max_file_size_mb}MB",
                    "FILE_SIZE_EXCEEDED",
                )
            wanted: List[Tuple[str, str, Optional[int], str, str]] = [
                (
                    "ingest", period, plan.monthly_ingest_limit,
                    "MONTHLY_INGEST_LIMIT_EXCEEDED",
                    f"Monthly ingest limit of {plan.monthly_ingest_limit} exceeded",
                ),
                (
                    "memories", "all", plan.memory_limit,
                    "MEMORY_LIMIT_EXCEEDED",
                    f"Memory limit of {plan.memory_limit} exceeded",
                ),
            ]
        elif operation == "query":
            wanted = [
                (
                    "query", period, plan.monthly_query_limit,
                    "MONTHLY_QUERY_LIMIT_EXCEEDED",
                    f"Monthly query limit of {plan.monthly_query_limit} exceeded",
                ),
            ]
        else:
            raise ValueError(f"Unknown operation: {operation!r}")

        consumed: List[Tuple[str, str]] = []
        for counter, per, limit, code, reason in wanted:
            if not self.usage.try_increment(user_id, counter, per, limit):
                for c, p in consumed:
                    self.usage.decrement(user_id, c, p)
                log.info("entitlement denied user=%s op=%s code=%s", user_id, operation, code)
                raise EntitlementError(reason, code)
            consumed.append((counter, per))

        return Grant(user_id=user_id, operation=operation, plan=plan, consumed=tuple(consumed))

    def release(self, grant: Grant) -> None:
        """Возврат квоты операции, которая не дошла до коммита."""
        for counter, period in grant.consumed:
            self.usage.decrement(grant.user_id, counter, period)
