# src/stakepool/ledger/plans.py
from __future__ import annotations

"""Plan registry: an ordered list of term plans addressed by position.

Plans are appended and updated in place, never removed. Deactivation only
blocks new stakes; existing stakes carry their own snapshot of the plan.
"""

from typing import Any, Dict, List

from stakepool.ledger.types import Plan
from stakepool.runtime.errors import E_INVALID_AMOUNT, E_INVALID_PLAN_INDEX, ApplyError

Json = Dict[str, Any]


def _ensure_plans(pool: Json) -> List[Json]:
    plans = pool.get("plans")
    if not isinstance(plans, list):
        plans = []
        pool["plans"] = plans
    return plans


def plan_count(pool: Json) -> int:
    return len(_ensure_plans(pool))


def get_plan(pool: Json, index: Any) -> Plan:
    plans = _ensure_plans(pool)
    try:
        i = int(index)
    except Exception:
        raise ApplyError(E_INVALID_PLAN_INDEX, "plan_index_not_int", {"plan_index": index})
    if isinstance(index, bool) or i < 0 or i >= len(plans):
        raise ApplyError(E_INVALID_PLAN_INDEX, "plan_index_out_of_range", {"plan_index": i, "plans": len(plans)})
    return Plan.from_json(plans[i])


def list_plans(pool: Json) -> List[Plan]:
    return [Plan.from_json(p) for p in _ensure_plans(pool)]


def _check_bounds(min_amount: int, max_amount: int) -> None:
    if min_amount < 0 or max_amount < 0:
        raise ApplyError(E_INVALID_AMOUNT, "negative_plan_bound", {"min_amount": min_amount, "max_amount": max_amount})
    if max_amount and min_amount > max_amount:
        raise ApplyError(E_INVALID_AMOUNT, "plan_min_above_max", {"min_amount": min_amount, "max_amount": max_amount})


def add_plan(
    pool: Json,
    *,
    duration: int,
    apy_bps: int,
    active: bool = True,
    min_amount: int = 0,
    max_amount: int = 0,
) -> Plan:
    if int(duration) <= 0:
        raise ApplyError(E_INVALID_AMOUNT, "plan_duration_must_be_positive", {"duration": duration})
    if int(apy_bps) < 0:
        raise ApplyError(E_INVALID_AMOUNT, "plan_apy_negative", {"apy_bps": apy_bps})
    _check_bounds(int(min_amount), int(max_amount))

    plans = _ensure_plans(pool)
    plan = Plan(
        index=len(plans),
        duration=int(duration),
        apy_bps=int(apy_bps),
        active=bool(active),
        min_amount=int(min_amount),
        max_amount=int(max_amount),
    )
    plans.append(plan.to_json())
    return plan


def update_plan(
    pool: Json,
    index: Any,
    *,
    apy_bps: int,
    active: bool,
    min_amount: int,
    max_amount: int,
) -> Plan:
    cur = get_plan(pool, index)
    if int(apy_bps) < 0:
        raise ApplyError(E_INVALID_AMOUNT, "plan_apy_negative", {"apy_bps": apy_bps})
    _check_bounds(int(min_amount), int(max_amount))

    plan = Plan(
        index=cur.index,
        duration=cur.duration,
        apy_bps=int(apy_bps),
        active=bool(active),
        min_amount=int(min_amount),
        max_amount=int(max_amount),
    )
    _ensure_plans(pool)[cur.index] = plan.to_json()
    return plan


__all__ = ["add_plan", "get_plan", "list_plans", "plan_count", "update_plan"]
