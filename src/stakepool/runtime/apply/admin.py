# src/stakepool/runtime/apply/admin.py
from __future__ import annotations

from typing import Any, Dict, Optional

from stakepool.ledger.balances import credit, debit
from stakepool.ledger.constants import BPS_DENOMINATOR, CURRENT_VERSION
from stakepool.ledger.migrations import migrate_pool
from stakepool.ledger.plans import add_plan, update_plan
from stakepool.ledger.state import ensure_pool
from stakepool.runtime.apply.common import (
    make_event,
    now_s,
    payload_bool,
    payload_int,
    payload_str,
    positive_amount,
    require_admin,
    require_version,
    signer_of,
)
from stakepool.runtime.errors import (
    E_INSUFFICIENT_REWARD_POOL,
    E_INVALID_AMOUNT,
    E_INVALID_PAYLOAD,
    E_NOT_IN_EMERGENCY_MODE,
    E_POOL_LIMIT_EXCEEDED,
    E_POOL_PAUSED,
    E_VERSION_MISMATCH,
    ApplyError,
)
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _require_admin_current(state: Json, env: TxEnvelope) -> Json:
    pool = ensure_pool(state)
    require_admin(pool, env)
    require_version(pool, env.tx_type)
    return pool


def _recipient(env: TxEnvelope) -> str:
    r = payload_str(env, "recipient")
    if not r:
        raise ApplyError(E_INVALID_PAYLOAD, "missing_recipient", {"tx_type": env.tx_type})
    return r


# --- Plan registry ---------------------------------------------------------


def _apply_plan_add(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    plan = add_plan(
        pool,
        duration=payload_int(env, "duration"),
        apy_bps=payload_int(env, "apy_bps"),
        active=payload_bool(env, "active", True),
        min_amount=payload_int(env, "min_amount", 0),
        max_amount=payload_int(env, "max_amount", 0),
    )
    return {
        "applied": "PLAN_ADD",
        "plan": plan.to_json(),
        "event": make_event("PlanUpdated", now=now_s(env), action="add", **plan.to_json()),
    }


def _apply_plan_update(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    plan = update_plan(
        pool,
        payload_int(env, "plan_index"),
        apy_bps=payload_int(env, "apy_bps"),
        active=payload_bool(env, "active"),
        min_amount=payload_int(env, "min_amount", 0),
        max_amount=payload_int(env, "max_amount", 0),
    )
    return {
        "applied": "PLAN_UPDATE",
        "plan": plan.to_json(),
        "event": make_event("PlanUpdated", now=now_s(env), action="update", **plan.to_json()),
    }


# --- Pool limits -----------------------------------------------------------


def _apply_pool_limits_update(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    delay = payload_int(env, "unstake_delay")
    rate = payload_int(env, "penalty_rate_bps")
    if delay < 0:
        raise ApplyError(E_INVALID_AMOUNT, "unstake_delay_negative", {"unstake_delay": delay})
    if rate < 0 or rate > BPS_DENOMINATOR:
        raise ApplyError(E_INVALID_AMOUNT, "penalty_rate_out_of_range", {"penalty_rate_bps": rate})

    pool["unstake_delay"] = delay
    pool["early_penalty_rate_bps"] = rate
    return {
        "applied": "POOL_LIMITS_UPDATE",
        "event": make_event(
            "PoolLimitsUpdated",
            now=now_s(env),
            kind="pool_limits",
            unstake_delay=delay,
            penalty_rate_bps=rate,
        ),
    }


def _apply_stake_limits_update(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    lo = payload_int(env, "min_amount")
    hi = payload_int(env, "max_amount")
    if lo < 0 or lo > hi:
        raise ApplyError(E_INVALID_AMOUNT, "min_above_max", {"min_amount": lo, "max_amount": hi})

    pool["min_stake_amount"] = lo
    pool["max_stake_amount"] = hi
    return {
        "applied": "STAKE_LIMITS_UPDATE",
        "event": make_event("PoolLimitsUpdated", now=now_s(env), kind="stake_limits", min_amount=lo, max_amount=hi),
    }


def _apply_pool_balance_limit_update(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    new_max = payload_int(env, "max_pool_balance")
    total = _as_int(pool.get("total_staked"), 0)
    if new_max < total:
        raise ApplyError(
            E_POOL_LIMIT_EXCEEDED,
            "below_total_staked",
            {"max_pool_balance": new_max, "total_staked": total},
        )

    pool["max_pool_balance"] = new_max
    return {
        "applied": "POOL_BALANCE_LIMIT_UPDATE",
        "event": make_event("PoolLimitsUpdated", now=now_s(env), kind="pool_balance", max_pool_balance=new_max),
    }


def _apply_max_stakes_per_owner_update(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    new_max = payload_int(env, "max_stakes_per_owner")
    if new_max <= 0:
        raise ApplyError(E_INVALID_AMOUNT, "max_stakes_must_be_positive", {"max_stakes_per_owner": new_max})

    # Not applied retroactively: owners already above the cap keep their stakes.
    pool["max_stakes_per_owner"] = new_max
    return {
        "applied": "MAX_STAKES_PER_OWNER_UPDATE",
        "event": make_event(
            "PoolLimitsUpdated",
            now=now_s(env),
            kind="max_stakes_per_owner",
            max_stakes_per_owner=new_max,
        ),
    }


# --- Emergency controls ----------------------------------------------------


def _apply_emergency_pause(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    pool["emergency_mode"] = True
    pool["paused"] = True
    return {
        "applied": "EMERGENCY_PAUSE",
        "event": make_event("EmergencyAction", now=now_s(env), action="pause"),
    }


def _apply_emergency_resume(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    if not bool(pool.get("emergency_mode", False)):
        raise ApplyError(E_NOT_IN_EMERGENCY_MODE, "not_in_emergency_mode", {"tx_type": env.tx_type})
    pool["emergency_mode"] = False
    pool["paused"] = False
    return {
        "applied": "EMERGENCY_RESUME",
        "event": make_event("EmergencyAction", now=now_s(env), action="resume"),
    }


def _apply_emergency_withdraw(state: Json, env: TxEnvelope) -> Json:
    """
    Moves funds straight out of the staking balance, bypassing the stake
    ledger. total_staked is left untouched, so the staking balance may fall
    below it afterwards.
    """
    pool = _require_admin_current(state, env)
    if not bool(pool.get("emergency_mode", False)):
        raise ApplyError(E_NOT_IN_EMERGENCY_MODE, "not_in_emergency_mode", {"tx_type": env.tx_type})

    amount = positive_amount(env)
    recipient = _recipient(env)
    staking_balance = _as_int(pool.get("staking_balance"), 0)
    if amount > staking_balance:
        raise ApplyError(
            E_INVALID_AMOUNT,
            "exceeds_staking_balance",
            {"amount": amount, "staking_balance": staking_balance},
        )

    pool["staking_balance"] = staking_balance - amount
    credit(state, recipient, amount)
    return {
        "applied": "EMERGENCY_WITHDRAW",
        "event": make_event(
            "EmergencyAction",
            now=now_s(env),
            action="withdraw",
            amount=amount,
            recipient=recipient,
        ),
    }


def _apply_pool_pause_set(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    paused = payload_bool(env, "paused")
    if not paused and bool(pool.get("emergency_mode", False)):
        # Leaving emergency mode goes through EMERGENCY_RESUME.
        raise ApplyError(E_POOL_PAUSED, "emergency_mode_active", {"tx_type": env.tx_type})

    pool["paused"] = paused
    return {
        "applied": "POOL_PAUSE_SET",
        "event": make_event("EmergencyAction", now=now_s(env), action="pause" if paused else "unpause"),
    }


# --- Reward pool -----------------------------------------------------------


def _apply_reward_pool_add(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    amount = positive_amount(env)
    funder = signer_of(env)

    debit(state, funder, amount)
    pool["reward_balance"] = _as_int(pool.get("reward_balance"), 0) + amount
    return {
        "applied": "REWARD_POOL_ADD",
        "event": make_event(
            "RewardPoolUpdated",
            now=now_s(env),
            amount=amount,
            funder=funder,
            reward_balance=int(pool["reward_balance"]),
        ),
    }


def _apply_reward_pool_withdraw(state: Json, env: TxEnvelope) -> Json:
    pool = _require_admin_current(state, env)
    amount = positive_amount(env)
    recipient = _recipient(env)
    reward_balance = _as_int(pool.get("reward_balance"), 0)
    if reward_balance < amount:
        raise ApplyError(
            E_INSUFFICIENT_REWARD_POOL,
            "reward_balance_too_low",
            {"amount": amount, "reward_balance": reward_balance},
        )

    pool["reward_balance"] = reward_balance - amount
    credit(state, recipient, amount)
    return {
        "applied": "REWARD_POOL_WITHDRAW",
        "event": make_event(
            "RewardPoolWithdrawn",
            now=now_s(env),
            amount=amount,
            recipient=recipient,
            reward_balance=int(pool["reward_balance"]),
        ),
    }


# --- Schema migration ------------------------------------------------------


def _apply_pool_migrate(state: Json, env: TxEnvelope) -> Json:
    """
    One-way upgrade of the pool document to CURRENT_VERSION.

    Not version-gated (it is the way out of a mismatch), but the capability
    must be the one bound to this pool.
    """
    pool = ensure_pool(state)
    require_admin(pool, env)

    have = _as_int(pool.get("schema_version"), 0)
    if have >= CURRENT_VERSION:
        raise ApplyError(
            E_VERSION_MISMATCH,
            "already_current" if have == CURRENT_VERSION else "pool_newer_than_binary",
            {"schema_version": have, "current_version": CURRENT_VERSION},
        )

    steps = migrate_pool(pool)
    return {
        "applied": "POOL_MIGRATE",
        "from_version": have,
        "to_version": CURRENT_VERSION,
        "steps": steps,
        "event": None,
    }


ADMIN_TX_TYPES = {
    "PLAN_ADD",
    "PLAN_UPDATE",
    "POOL_LIMITS_UPDATE",
    "STAKE_LIMITS_UPDATE",
    "POOL_BALANCE_LIMIT_UPDATE",
    "MAX_STAKES_PER_OWNER_UPDATE",
    "EMERGENCY_PAUSE",
    "EMERGENCY_RESUME",
    "EMERGENCY_WITHDRAW",
    "POOL_PAUSE_SET",
    "REWARD_POOL_ADD",
    "REWARD_POOL_WITHDRAW",
    "POOL_MIGRATE",
}

_HANDLERS = {
    "PLAN_ADD": _apply_plan_add,
    "PLAN_UPDATE": _apply_plan_update,
    "POOL_LIMITS_UPDATE": _apply_pool_limits_update,
    "STAKE_LIMITS_UPDATE": _apply_stake_limits_update,
    "POOL_BALANCE_LIMIT_UPDATE": _apply_pool_balance_limit_update,
    "MAX_STAKES_PER_OWNER_UPDATE": _apply_max_stakes_per_owner_update,
    "EMERGENCY_PAUSE": _apply_emergency_pause,
    "EMERGENCY_RESUME": _apply_emergency_resume,
    "EMERGENCY_WITHDRAW": _apply_emergency_withdraw,
    "POOL_PAUSE_SET": _apply_pool_pause_set,
    "REWARD_POOL_ADD": _apply_reward_pool_add,
    "REWARD_POOL_WITHDRAW": _apply_reward_pool_withdraw,
    "POOL_MIGRATE": _apply_pool_migrate,
}


def apply_admin(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result (receipt with the emitted event, if any)
      - None: tx_type not in the admin domain
    """
    t = str(env.tx_type or "").strip().upper()
    if t not in ADMIN_TX_TYPES:
        return None
    return _HANDLERS[t](state, env)


__all__ = ["ADMIN_TX_TYPES", "apply_admin"]
