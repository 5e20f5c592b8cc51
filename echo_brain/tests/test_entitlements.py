import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from echo_brain.adapters.plans_static import StaticPlanResolver
from echo_brain.adapters.usage_store_memory import InMemoryUsageStore
from echo_brain.adapters.usage_store_sqlite import SqliteUsageStore
from echo_brain.domain.errors import EntitlementError
from echo_brain.use_cases.entitlements import PLANS, EntitlementGate, Plan, month_period

TINY = Plan(
    tier="tiny",
    monthly_ingest_limit=3,
    memory_limit=2,
    max_file_size_mb=1,
    vector_search_depth=5,
    monthly_query_limit=1,
)


def _gate(usage=None, tier="tiny", clock=None):
    catalog = dict(PLANS)
    catalog["tiny"] = TINY
    gate = EntitlementGate(
        usage=usage or InMemoryUsageStore(),
        plans=StaticPlanResolver(default_tier=tier),
        catalog=catalog,
    )
    if clock is not None:
        gate.clock = clock
    return gate


def test_memory_limit_denies_and_refunds_monthly_counter():
    usage = InMemoryUsageStore()
    gate = _gate(usage)

    gate.authorize("u1", "ingest")
    gate.authorize("u1", "ingest")
    with pytest.raises(EntitlementError) as ei:
        gate.authorize("u1", "ingest")
    assert ei.value.code == "MEMORY_LIMIT_EXCEEDED"

    period = datetime.now(timezone.utc).strftime("%Y-%m")
    # отказ по второму счётчику не должен съесть месячную квоту
    assert usage.get("u1", "ingest", period) == 2
    assert usage.get("u1", "memories", "all") == 2


def test_monthly_limit_resets_with_period():
    usage = InMemoryUsageStore()
    now = {"t": datetime(2026, 1, 15, tzinfo=timezone.utc)}
    gate = _gate(usage, clock=lambda: now["t"])

    gate.authorize("u1", "query")
    with pytest.raises(EntitlementError) as ei:
        gate.authorize("u1", "query")
    assert ei.value.code == "MONTHLY_QUERY_LIMIT_EXCEEDED"

    now["t"] = datetime(2026, 2, 1, tzinfo=timezone.utc)
    gate.authorize("u1", "query")


def test_file_size_limit_checked_before_counters():
    usage = InMemoryUsageStore()
    gate = _gate(usage)
    with pytest.raises(EntitlementError) as ei:
        gate.authorize("u1", "ingest", size_bytes=2 * 1024 * 1024)
    assert ei.value.code == "FILE_SIZE_EXCEEDED"
    assert usage.get("u1", "memories", "all") == 0


def test_release_returns_quota():
    gate = _gate()
    g = gate.authorize("u1", "query")
    gate.release(g)
    gate.authorize("u1", "query")


def test_unknown_plan_is_denied():
    gate = _gate(tier="platinum")
    with pytest.raises(EntitlementError) as ei:
        gate.authorize("u1", "query")
    assert ei.value.code == "UNKNOWN_PLAN"


def test_pro_plan_has_no_memory_limit():
    gate = _gate(tier="pro")
    for _ in range(60):
        g = gate.authorize("u1", "ingest")
    assert g.plan.memory_limit is None
    assert g.plan.vector_search_depth == 50


def test_users_do_not_share_counters():
    gate = _gate()
    gate.authorize("u1", "query")
    gate.authorize("u2", "query")


def _hammer(usage, n_threads, limit):
    with ThreadPoolExecutor(max_workers=n_threads) as pool:
        results = list(pool.map(lambda _: usage.try_increment("u1", "ingest", "2026-01", limit), range(n_threads)))
    return results


def test_in_memory_conditional_increment_has_no_overshoot():
    usage = InMemoryUsageStore()
    results = _hammer(usage, 32, 7)
    assert results.count(True) == 7
    assert usage.get("u1", "ingest", "2026-01") == 7


def test_sqlite_conditional_increment_has_no_overshoot():
    with tempfile.TemporaryDirectory() as d:
        usage = SqliteUsageStore(f"{d}/usage.sqlite3")
        results = _hammer(usage, 16, 5)
        assert results.count(True) == 5
        assert usage.get("u1", "ingest", "2026-01") == 5

        usage.decrement("u1", "ingest", "2026-01")
        assert usage.try_increment("u1", "ingest", "2026-01", 5) is True
        assert usage.try_increment("u1", "ingest", "2026-01", 5) is False


def test_sqlite_unlimited_counter():
    with tempfile.TemporaryDirectory() as d:
        usage = SqliteUsageStore(f"{d}/usage.sqlite3")
        for _ in range(3):
            assert usage.try_increment("u1", "memories", "all", None)
        assert usage.get("u1", "memories", "all") == 3


def test_timeline_denial_consumes_nothing():
    usage = InMemoryUsageStore()
    gate = _gate(usage=usage)
    gate.catalog["tiny"] = replace(TINY, timeline_access=False)

    with pytest.raises(EntitlementError) as ei:
        gate.authorize("u1", "query", timeline=True)
    assert ei.value.code == "TIMELINE_NOT_AVAILABLE"
    with pytest.raises(EntitlementError):
        gate.require_timeline("u1")
    period = month_period(gate.clock())
    assert usage.get("u1", "query", period) == 0

    # без таймлайна тот же тариф работает как обычно
    assert gate.authorize("u1", "query").consumed == (("query", period),)


def test_free_plan_hides_confidence_detail():
    assert PLANS["free"].answer_confidence_detail is False
    assert PLANS["pro"].answer_confidence_detail is True
    assert all(p.timeline_access for p in PLANS.values())
