from __future__ import annotations

import copy

import pytest

from stakepool.ledger.balances import balance_of
from stakepool.ledger.constants import DAY_SECONDS, STAKE_STAKED, STAKE_UNSTAKE_REQUESTED, STAKE_WITHDRAWN
from stakepool.ledger.state import PoolView, check_invariants
from stakepool.runtime.domain_apply import ApplyError, apply_tx_atomic

AMOUNT = 10_000_000_000_000
PENALTY = 500_000_000_000
DELAY = 7 * DAY_SECONDS
TERM = 90 * DAY_SECONDS


def _apply(state, env):
    out = apply_tx_atomic(state, env)
    assert check_invariants(state) == []
    return out


def _stake(state, make_tx, owner="alice", *, at=0, plan_index=0, amount=AMOUNT):
    return _apply(state, make_tx("STAKE", owner, {"plan_index": plan_index, "amount": amount}, at=at))


def _fund_rewards(state, make_tx, cap, amount, *, at=0):
    return _apply(state, make_tx("REWARD_POOL_ADD", "treasury", {"amount": amount}, at=at, cap=cap))


def test_stake_moves_funds_and_records_snapshot(pool_state, make_tx) -> None:
    state, _cap = pool_state
    before = balance_of(state, "alice")

    out = _stake(state, make_tx, at=100)

    assert balance_of(state, "alice") == before - AMOUNT
    pool = state["pool"]
    assert pool["staking_balance"] == AMOUNT
    assert pool["total_staked"] == AMOUNT

    stake = out["stake"]
    assert stake["index"] == 0
    assert stake["state"] == STAKE_STAKED
    assert stake["start_time"] == 100
    assert stake["end_time"] == 100 + TERM
    assert stake["plan"]["apy_bps"] == 500

    ev = out["event"]
    assert ev["event"] == "StakeCreated"
    assert (ev["owner"], ev["amount"], ev["plan_index"], ev["stake_index"]) == ("alice", AMOUNT, 0, 0)


def test_early_exit_pays_principal_minus_penalty(pool_state, make_tx) -> None:
    state, _cap = pool_state
    start_balance = balance_of(state, "alice")
    _stake(state, make_tx, at=0)

    req = _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=10 * DAY_SECONDS))
    assert req["request"]["penalty_amount"] == PENALTY
    assert req["event"]["event"] == "UnstakeRequested"
    assert PoolView.from_state(state).stake_status("alice", 0) == STAKE_UNSTAKE_REQUESTED

    out = _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=10 * DAY_SECONDS + DELAY))
    ev = out["event"]
    assert ev["event"] == "Withdrawn"
    assert ev["amount_returned"] == AMOUNT - PENALTY
    assert ev["reward"] == 0
    assert ev["penalty"] == PENALTY

    pool = state["pool"]
    assert balance_of(state, "alice") == start_balance - PENALTY
    assert pool["total_staked"] == 0
    assert pool["staking_balance"] == 0
    # Forfeited principal funds future rewards.
    assert pool["reward_balance"] == PENALTY
    assert PoolView.from_state(state).stake_status("alice", 0) == STAKE_WITHDRAWN


def test_penalty_is_fixed_at_request_time(pool_state, make_tx) -> None:
    state, cap = pool_state
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=DAY_SECONDS))

    # Raising the rate afterwards does not touch the recorded penalty.
    _apply(
        state,
        make_tx("POOL_LIMITS_UPDATE", "ops", {"unstake_delay": DELAY, "penalty_rate_bps": 5000}, at=DAY_SECONDS, cap=cap),
    )
    out = _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=TERM + DELAY))
    assert out["event"]["penalty"] == PENALTY
    # Matured by the time of withdrawal, but the early request forfeits the reward.
    assert out["event"]["reward"] == 0


def test_unstake_delay_boundary_is_inclusive(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    t_req = 5 * DAY_SECONDS
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=t_req))

    snapshot = copy.deepcopy(state)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=t_req + DELAY - 1))
    assert e.value.code == "unstake_delay_not_met"
    assert state == snapshot

    _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=t_req + DELAY))


def test_matured_exit_pays_reward_floor(pool_state, make_tx) -> None:
    state, cap = pool_state
    _fund_rewards(state, make_tx, cap, 1_000)
    start_balance = balance_of(state, "alice")
    _stake(state, make_tx, at=0)

    req = _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=TERM))
    assert req["request"]["penalty_amount"] == 0

    out = _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=TERM + DELAY))
    # 90 days is under one year: the reward formula yields 0 and floors to 1 unit.
    assert out["event"]["reward"] == 1
    assert out["event"]["amount_returned"] == AMOUNT
    assert balance_of(state, "alice") == start_balance + 1
    assert state["pool"]["reward_balance"] == 999


def test_matured_exit_without_reward_funds_is_rejected(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=TERM))

    snapshot = copy.deepcopy(state)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=TERM + DELAY))
    assert e.value.code == "insufficient_reward_pool"
    assert state == snapshot


def test_process_unstake_is_not_repeatable(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=DAY_SECONDS))
    _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=DAY_SECONDS + DELAY))

    snapshot = copy.deepcopy(state)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=DAY_SECONDS + 2 * DELAY))
    assert e.value.code == "invalid_stake_period"
    assert state == snapshot


def test_request_twice_is_rejected(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=1))
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=2))
    assert e.value.code == "invalid_stake_period"


def test_process_without_request_is_rejected(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=TERM + DELAY))
    assert e.value.code == "invalid_stake_period"


def test_unknown_owner_and_index(pool_state, make_tx) -> None:
    state, _cap = pool_state
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_REQUEST", "bob", {"stake_index": 0}, at=1))
    assert e.value.code == "staker_not_found"

    _stake(state, make_tx, at=0)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 1}, at=1))
    assert e.value.code == "staker_not_found"


def test_stake_indexes_are_never_reused(pool_state, make_tx) -> None:
    state, _cap = pool_state
    _stake(state, make_tx, at=0)
    _stake(state, make_tx, at=1)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=2))
    _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=2 + DELAY))

    out = _stake(state, make_tx, at=3 + DELAY)
    assert out["stake"]["index"] == 2
    view = PoolView.from_state(state)
    assert [s["state"] for s in view.stakes_of("alice")] == [STAKE_WITHDRAWN, STAKE_STAKED, STAKE_STAKED]


def test_admin_can_process_on_owner_behalf(pool_state, make_tx) -> None:
    state, cap = pool_state
    start_balance = balance_of(state, "alice")
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=DAY_SECONDS))

    env = make_tx("UNSTAKE_PROCESS", "ops", {"stake_index": 0, "owner": "alice"}, at=DAY_SECONDS + DELAY)
    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, env)
    assert e.value.code == "unauthorized"

    out = _apply(
        state,
        make_tx("UNSTAKE_PROCESS", "ops", {"stake_index": 0, "owner": "alice"}, at=DAY_SECONDS + DELAY, cap=cap),
    )
    assert out["owner"] == "alice"
    assert balance_of(state, "alice") == start_balance - PENALTY
    assert balance_of(state, "ops") == 0


def test_paused_pool_blocks_stake_and_withdrawal(pool_state, make_tx) -> None:
    state, cap = pool_state
    _stake(state, make_tx, at=0)
    _apply(state, make_tx("UNSTAKE_REQUEST", "alice", {"stake_index": 0}, at=1))
    _apply(state, make_tx("POOL_PAUSE_SET", "ops", {"paused": True}, at=2, cap=cap))

    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("STAKE", "bob", {"plan_index": 0, "amount": AMOUNT}, at=3))
    assert e.value.code == "pool_paused"

    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=1 + DELAY))
    assert e.value.code == "pool_paused"

    _apply(state, make_tx("POOL_PAUSE_SET", "ops", {"paused": False}, at=4, cap=cap))
    _apply(state, make_tx("UNSTAKE_PROCESS", "alice", {"stake_index": 0}, at=1 + DELAY))


def test_plan_snapshot_survives_plan_update(pool_state, make_tx) -> None:
    state, cap = pool_state
    _stake(state, make_tx, at=0, plan_index=2)
    _apply(
        state,
        make_tx("PLAN_UPDATE", "ops", {"plan_index": 2, "apy_bps": 1, "active": False}, at=1, cap=cap),
    )
    stake = PoolView.from_state(state).stake_info("alice", 0)
    assert stake["plan"]["apy_bps"] == 1200
    assert stake["plan"]["active"] is True

    with pytest.raises(ApplyError) as e:
        apply_tx_atomic(state, make_tx("STAKE", "bob", {"plan_index": 2, "amount": AMOUNT}, at=2))
    assert e.value.code == "invalid_plan_index"
