from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from stakepool.ledger.constants import (
    CURRENT_VERSION,
    DEFAULT_EARLY_PENALTY_RATE_BPS,
    DEFAULT_MAX_POOL_BALANCE,
    DEFAULT_MAX_STAKE_AMOUNT,
    DEFAULT_MAX_STAKES_PER_OWNER,
    DEFAULT_MIN_STAKE_AMOUNT,
    DEFAULT_UNSTAKE_DELAY,
    STAKE_STAKED,
    STAKE_WITHDRAWN,
)
from stakepool.ledger.plans import add_plan, get_plan, list_plans
from stakepool.ledger.requests import find_request
from stakepool.ledger.stakes import get_stake, iter_all_stakes, list_stakes
from stakepool.ledger.types import AdminCap

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return int(default)
        return int(v)
    except Exception:
        return int(default)


def new_pool_state(
    *,
    pool_id: str,
    unstake_delay: int = DEFAULT_UNSTAKE_DELAY,
    early_penalty_rate_bps: int = DEFAULT_EARLY_PENALTY_RATE_BPS,
    min_stake_amount: int = DEFAULT_MIN_STAKE_AMOUNT,
    max_stake_amount: int = DEFAULT_MAX_STAKE_AMOUNT,
    max_pool_balance: int = DEFAULT_MAX_POOL_BALANCE,
    max_stakes_per_owner: int = DEFAULT_MAX_STAKES_PER_OWNER,
    plans: Iterable[Tuple[int, int]] = (),
    accounts: Optional[Json] = None,
) -> Tuple[Json, AdminCap]:
    """Create a fresh state document at CURRENT_VERSION.

    Returns (state, admin_cap). The capability is the only way to act as the
    pool's administrator, so callers must keep it.
    """
    pid = str(pool_id).strip()
    if not pid:
        raise ValueError("pool_id must be a non-empty string")
    if int(min_stake_amount) > int(max_stake_amount):
        raise ValueError("min_stake_amount must be <= max_stake_amount")

    cap = AdminCap.mint(pid)
    pool: Json = {
        "schema_version": CURRENT_VERSION,
        "pool_id": pid,
        "admin_id": cap.cap_id,
        "staking_balance": 0,
        "reward_balance": 0,
        "plans": [],
        "stakes_by_owner": {},
        "requests_by_owner": {},
        "total_staked": 0,
        "unstake_delay": int(unstake_delay),
        "early_penalty_rate_bps": int(early_penalty_rate_bps),
        "paused": False,
        "emergency_mode": False,
        "min_stake_amount": int(min_stake_amount),
        "max_stake_amount": int(max_stake_amount),
        "max_pool_balance": int(max_pool_balance),
        "max_stakes_per_owner": int(max_stakes_per_owner),
    }
    for duration, apy in plans:
        add_plan(pool, duration=int(duration), apy_bps=int(apy), active=True)

    state: Json = {"pool": pool, "accounts": copy.deepcopy(accounts) if isinstance(accounts, dict) else {}}
    return state, cap


def ensure_pool(state: Json) -> Json:
    """Return state['pool'], failing closed if the document has none."""
    if not isinstance(state, dict):
        raise TypeError(f"state must be dict, got {type(state)}")
    pool = state.get("pool")
    if not isinstance(pool, dict):
        raise TypeError("state['pool'] is missing; create it with new_pool_state()")
    return pool


def check_invariants(state: Json) -> List[str]:
    """Return a list of violated pool invariants (empty when healthy).

    Reports instead of raising: emergency withdrawal is allowed to break the
    balance correspondence at operator discretion.
    """
    pool = ensure_pool(state)
    problems: List[str] = []

    live = 0
    for s in iter_all_stakes(pool):
        if s.state != STAKE_WITHDRAWN:
            live += int(s.amount)
        req = find_request(pool, s.owner, s.index)
        if s.state == STAKE_STAKED and req is not None:
            problems.append(f"request_without_transition:{s.owner}:{s.index}")
        if s.state != STAKE_STAKED and req is None:
            problems.append(f"transition_without_request:{s.owner}:{s.index}")

    total = _as_int(pool.get("total_staked"), 0)
    if total != live:
        problems.append(f"total_staked_mismatch:{total}!={live}")
    if _as_int(pool.get("staking_balance"), 0) < total:
        problems.append("staking_balance_below_total_staked")
    if total > _as_int(pool.get("max_pool_balance"), 0):
        problems.append("total_staked_above_max_pool_balance")
    return problems


@dataclass(frozen=True, slots=True)
class PoolView:
    """
    Immutable read-only view over a pool state document.
    """

    pool: Json = field(default_factory=dict)
    accounts: Json = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: Json) -> "PoolView":
        pool = state.get("pool") if isinstance(state, dict) else None
        accts = state.get("accounts") if isinstance(state, dict) else None
        return cls(
            pool=copy.deepcopy(pool) if isinstance(pool, dict) else {},
            accounts=copy.deepcopy(accts) if isinstance(accts, dict) else {},
        )

    def pool_info(self) -> Json:
        p = self.pool
        return {
            "pool_id": str(p.get("pool_id", "")),
            "schema_version": _as_int(p.get("schema_version"), 0),
            "staking_balance": _as_int(p.get("staking_balance"), 0),
            "reward_balance": _as_int(p.get("reward_balance"), 0),
            "total_staked": _as_int(p.get("total_staked"), 0),
            "unstake_delay": _as_int(p.get("unstake_delay"), 0),
            "early_penalty_rate_bps": _as_int(p.get("early_penalty_rate_bps"), 0),
            "paused": bool(p.get("paused", False)),
            "emergency_mode": bool(p.get("emergency_mode", False)),
            "min_stake_amount": _as_int(p.get("min_stake_amount"), 0),
            "max_stake_amount": _as_int(p.get("max_stake_amount"), 0),
            "max_pool_balance": _as_int(p.get("max_pool_balance"), 0),
            "max_stakes_per_owner": _as_int(p.get("max_stakes_per_owner"), 0),
            "plan_count": len(p.get("plans") or []),
        }

    def plan_info(self, index: Any) -> Json:
        return get_plan(self.pool, index).to_json()

    def plans(self) -> List[Json]:
        return [p.to_json() for p in list_plans(self.pool)]

    def stake_info(self, owner: str, index: Any) -> Json:
        return get_stake(self.pool, owner, index).to_json()

    def stakes_of(self, owner: str) -> List[Json]:
        return [s.to_json() for s in list_stakes(self.pool, owner)]

    def stake_status(self, owner: str, index: Any) -> str:
        return get_stake(self.pool, owner, index).state

    def unstake_request_info(self, owner: str, index: Any) -> Optional[Json]:
        # Validates the stake exists first so a bad index reports staker_not_found.
        stake = get_stake(self.pool, owner, index)
        req = find_request(self.pool, owner, stake.index)
        return req.to_json() if req is not None else None

    def balance_of(self, account_id: str) -> int:
        acct = self.accounts.get(account_id)
        return _as_int(acct.get("balance"), 0) if isinstance(acct, dict) else 0


__all__ = ["PoolView", "check_invariants", "ensure_pool", "new_pool_state"]
