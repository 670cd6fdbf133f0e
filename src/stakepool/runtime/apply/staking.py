# src/stakepool/runtime/apply/staking.py
from __future__ import annotations

from typing import Any, Dict, Optional

from stakepool.ledger.balances import credit, debit
from stakepool.ledger.constants import STAKE_STAKED, STAKE_UNSTAKE_REQUESTED, STAKE_WITHDRAWN
from stakepool.ledger.plans import get_plan
from stakepool.ledger.requests import get_request, record_request
from stakepool.ledger.rewards import calculate_penalty, calculate_reward, reward_eligible
from stakepool.ledger.stakes import advance_state, create_stake, get_stake, has_stakes, stake_count
from stakepool.ledger.state import ensure_pool
from stakepool.ledger.types import UnstakeRequest
from stakepool.runtime.apply.common import (
    make_event,
    now_s,
    payload_int,
    payload_str,
    positive_amount,
    require_admin,
    require_version,
    signer_of,
)
from stakepool.runtime.errors import (
    E_INSUFFICIENT_BALANCE,
    E_INSUFFICIENT_REWARD_POOL,
    E_INVALID_AMOUNT,
    E_INVALID_PLAN_INDEX,
    E_INVALID_STAKE_PERIOD,
    E_MAX_STAKES_REACHED,
    E_POOL_LIMIT_EXCEEDED,
    E_POOL_PAUSED,
    E_STAKER_NOT_FOUND,
    E_UNSTAKE_DELAY_NOT_MET,
    ApplyError,
)
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _apply_stake(state: Json, env: TxEnvelope) -> Json:
    """
    STAKE {plan_index, amount}

    Preconditions are checked in a fixed order; the first failure aborts.
    """
    pool = ensure_pool(state)
    owner = signer_of(env)
    now = now_s(env)

    if bool(pool.get("paused", False)):
        raise ApplyError(E_POOL_PAUSED, "pool_paused", {"tx_type": env.tx_type})
    if bool(pool.get("emergency_mode", False)):
        raise ApplyError(E_POOL_PAUSED, "emergency_mode", {"tx_type": env.tx_type})
    require_version(pool, env.tx_type)

    amount = positive_amount(env)
    plan = get_plan(pool, payload_int(env, "plan_index"))
    if not plan.active:
        raise ApplyError(E_INVALID_PLAN_INDEX, "plan_inactive", {"plan_index": plan.index})

    # Plan bounds of 0 mean the plan does not narrow the pool-wide range.
    lo = max(_as_int(pool.get("min_stake_amount"), 0), int(plan.min_amount))
    hi = _as_int(pool.get("max_stake_amount"), 0)
    if plan.max_amount:
        hi = min(hi, int(plan.max_amount))
    if amount < lo or amount > hi:
        raise ApplyError(E_INVALID_AMOUNT, "amount_out_of_bounds", {"amount": amount, "min": lo, "max": hi})

    total = _as_int(pool.get("total_staked"), 0)
    cap = _as_int(pool.get("max_pool_balance"), 0)
    if total + amount > cap:
        raise ApplyError(
            E_POOL_LIMIT_EXCEEDED,
            "max_pool_balance_exceeded",
            {"total_staked": total, "amount": amount, "max_pool_balance": cap},
        )

    count = stake_count(pool, owner)
    max_stakes = _as_int(pool.get("max_stakes_per_owner"), 0)
    if count >= max_stakes:
        raise ApplyError(E_MAX_STAKES_REACHED, "max_stakes_per_owner", {"owner": owner, "count": count, "max": max_stakes})

    debit(state, owner, amount)
    pool["staking_balance"] = _as_int(pool.get("staking_balance"), 0) + amount
    stake = create_stake(pool, owner=owner, amount=amount, plan=plan, now=now)
    pool["total_staked"] = total + amount

    return {
        "applied": "STAKE",
        "stake": stake.to_json(),
        "event": make_event(
            "StakeCreated",
            now=now,
            owner=owner,
            amount=amount,
            plan_index=plan.index,
            stake_index=stake.index,
        ),
    }


def _apply_unstake_request(state: Json, env: TxEnvelope) -> Json:
    """
    UNSTAKE_REQUEST {stake_index}

    The penalty is fixed here and never recomputed at withdrawal.
    """
    pool = ensure_pool(state)
    owner = signer_of(env)
    now = now_s(env)

    require_version(pool, env.tx_type)
    if not has_stakes(pool, owner):
        raise ApplyError(E_STAKER_NOT_FOUND, "no_stakes_for_owner", {"owner": owner})

    stake = get_stake(pool, owner, payload_int(env, "stake_index"))
    if stake.state != STAKE_STAKED:
        raise ApplyError(
            E_INVALID_STAKE_PERIOD,
            "stake_not_staked",
            {"owner": owner, "stake_index": stake.index, "state": stake.state},
        )

    penalty = calculate_penalty(stake, now=now, penalty_rate_bps=_as_int(pool.get("early_penalty_rate_bps"), 0))
    advance_state(pool, owner, stake.index, expect=STAKE_STAKED, to=STAKE_UNSTAKE_REQUESTED)
    req = record_request(
        pool,
        UnstakeRequest(owner=owner, stake_index=stake.index, request_time=now, penalty_amount=penalty),
    )

    return {
        "applied": "UNSTAKE_REQUEST",
        "request": req.to_json(),
        "event": make_event(
            "UnstakeRequested",
            now=now,
            owner=owner,
            stake_index=stake.index,
            penalty=penalty,
        ),
    }


def _resolve_unstake_owner(pool: Json, env: TxEnvelope) -> str:
    """Owner processes their own stake; an admin may process on an owner's behalf."""
    signer = signer_of(env)
    owner = payload_str(env, "owner")
    if not owner or owner == signer:
        return signer
    require_admin(pool, env)
    return owner


def _apply_unstake_process(state: Json, env: TxEnvelope) -> Json:
    """
    UNSTAKE_PROCESS {stake_index, owner?}

    Pays principal minus penalty plus any eligible reward; forfeited principal
    moves into the reward balance.
    """
    pool = ensure_pool(state)
    now = now_s(env)

    require_version(pool, env.tx_type)
    if bool(pool.get("paused", False)):
        raise ApplyError(E_POOL_PAUSED, "pool_paused", {"tx_type": env.tx_type})

    owner = _resolve_unstake_owner(pool, env)
    stake = get_stake(pool, owner, payload_int(env, "stake_index"))
    if stake.state != STAKE_UNSTAKE_REQUESTED:
        raise ApplyError(
            E_INVALID_STAKE_PERIOD,
            "stake_not_unstake_requested",
            {"owner": owner, "stake_index": stake.index, "state": stake.state},
        )

    req = get_request(pool, owner, stake.index)
    delay = _as_int(pool.get("unstake_delay"), 0)
    ready_at = int(req.request_time) + delay
    if now < ready_at:
        raise ApplyError(
            E_UNSTAKE_DELAY_NOT_MET,
            "unstake_delay_not_met",
            {"owner": owner, "stake_index": stake.index, "now": now, "ready_at": ready_at},
        )

    penalty = int(req.penalty_amount)
    reward = 0
    if reward_eligible(stake, now=now, penalty_amount=penalty):
        reward = calculate_reward(stake)
    reward_balance = _as_int(pool.get("reward_balance"), 0)
    if reward_balance < reward:
        raise ApplyError(
            E_INSUFFICIENT_REWARD_POOL,
            "reward_balance_too_low",
            {"reward": reward, "reward_balance": reward_balance},
        )

    amount_to_return = int(stake.amount) - penalty
    if amount_to_return <= 0:
        raise ApplyError(
            E_INVALID_AMOUNT,
            "nothing_to_return",
            {"amount": stake.amount, "penalty": penalty},
        )

    staking_balance = _as_int(pool.get("staking_balance"), 0)
    if staking_balance < int(stake.amount):
        # Only reachable after an emergency withdrawal drained the pool.
        raise ApplyError(
            E_INSUFFICIENT_BALANCE,
            "staking_balance_too_low",
            {"staking_balance": staking_balance, "amount": stake.amount},
        )

    pool["staking_balance"] = staking_balance - amount_to_return
    pool["reward_balance"] = reward_balance - reward
    credit(state, owner, amount_to_return + reward)

    advance_state(pool, owner, stake.index, expect=STAKE_UNSTAKE_REQUESTED, to=STAKE_WITHDRAWN)
    pool["total_staked"] = _as_int(pool.get("total_staked"), 0) - int(stake.amount)

    if penalty > 0:
        pool["staking_balance"] = _as_int(pool.get("staking_balance"), 0) - penalty
        pool["reward_balance"] = _as_int(pool.get("reward_balance"), 0) + penalty

    return {
        "applied": "UNSTAKE_PROCESS",
        "owner": owner,
        "stake_index": stake.index,
        "event": make_event(
            "Withdrawn",
            now=now,
            owner=owner,
            stake_index=stake.index,
            amount_returned=amount_to_return,
            reward=reward,
            penalty=penalty,
        ),
    }


STAKING_TX_TYPES = {
    "STAKE",
    "UNSTAKE_REQUEST",
    "UNSTAKE_PROCESS",
}


def apply_staking(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result (receipt with the emitted event)
      - None: tx_type not in the staking domain
    """
    t = str(env.tx_type or "").strip().upper()
    if t not in STAKING_TX_TYPES:
        return None

    if t == "STAKE":
        return _apply_stake(state, env)

    if t == "UNSTAKE_REQUEST":
        return _apply_unstake_request(state, env)

    if t == "UNSTAKE_PROCESS":
        return _apply_unstake_process(state, env)

    return None


__all__ = ["STAKING_TX_TYPES", "apply_staking"]
