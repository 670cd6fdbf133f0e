# src/stakepool/ledger/stakes.py
from __future__ import annotations

"""Per-account stake ledger.

stakes_by_owner[owner][str(index)] -> Stake JSON. Indexes are a per-owner
zero-based sequence; records are never deleted, so an index is never reused.
"""

from typing import Any, Dict, List

from stakepool.ledger.constants import STAKE_STAKED, STAKE_STATES
from stakepool.ledger.types import Plan, Stake
from stakepool.runtime.errors import E_INVALID_STAKE_PERIOD, E_STAKER_NOT_FOUND, ApplyError

Json = Dict[str, Any]


def _ensure_stakes_root(pool: Json) -> Json:
    root = pool.get("stakes_by_owner")
    if not isinstance(root, dict):
        root = {}
        pool["stakes_by_owner"] = root
    return root


def _owner_stakes(pool: Json, owner: str, *, create: bool = False) -> Json | None:
    root = _ensure_stakes_root(pool)
    book = root.get(owner)
    if isinstance(book, dict):
        return book
    if not create:
        return None
    book = {}
    root[owner] = book
    return book


def has_stakes(pool: Json, owner: str) -> bool:
    return _owner_stakes(pool, owner) is not None


def stake_count(pool: Json, owner: str) -> int:
    """Stakes ever created by owner, in any state."""
    book = _owner_stakes(pool, owner)
    return len(book) if book else 0


def create_stake(pool: Json, *, owner: str, amount: int, plan: Plan, now: int) -> Stake:
    book = _owner_stakes(pool, owner, create=True)
    assert book is not None
    index = len(book)
    stake = Stake(
        index=index,
        owner=owner,
        amount=int(amount),
        start_time=int(now),
        end_time=int(now) + int(plan.duration),
        plan=plan,
        state=STAKE_STAKED,
    )
    book[str(index)] = stake.to_json()
    return stake


def get_stake(pool: Json, owner: str, index: Any) -> Stake:
    book = _owner_stakes(pool, owner)
    if book is None:
        raise ApplyError(E_STAKER_NOT_FOUND, "no_stakes_for_owner", {"owner": owner})
    try:
        i = int(index)
    except Exception:
        raise ApplyError(E_STAKER_NOT_FOUND, "stake_index_not_int", {"owner": owner, "stake_index": index})
    rec = book.get(str(i))
    if isinstance(index, bool) or not isinstance(rec, dict):
        raise ApplyError(E_STAKER_NOT_FOUND, "stake_index_out_of_range", {"owner": owner, "stake_index": i})
    return Stake.from_json(rec)


def list_stakes(pool: Json, owner: str) -> List[Stake]:
    book = _owner_stakes(pool, owner) or {}
    return [Stake.from_json(book[k]) for k in sorted(book.keys(), key=int)]


def iter_all_stakes(pool: Json):
    for owner in sorted(_ensure_stakes_root(pool).keys()):
        yield from list_stakes(pool, owner)


def advance_state(pool: Json, owner: str, index: int, *, expect: str, to: str) -> Stake:
    """Move a stake one step forward along STAKE_STATES.

    Fails if the stake is not currently in `expect` or if `to` would not be the
    next state.
    """
    stake = get_stake(pool, owner, index)
    if stake.state != expect:
        raise ApplyError(
            E_INVALID_STAKE_PERIOD,
            "unexpected_stake_state",
            {"owner": owner, "stake_index": int(index), "state": stake.state, "expected": expect},
        )
    cur = STAKE_STATES.index(stake.state)
    if to not in STAKE_STATES or STAKE_STATES.index(to) != cur + 1:
        raise ApplyError(
            E_INVALID_STAKE_PERIOD,
            "illegal_stake_transition",
            {"owner": owner, "stake_index": int(index), "from": stake.state, "to": to},
        )
    book = _owner_stakes(pool, owner)
    assert book is not None
    book[str(stake.index)]["state"] = to
    return Stake.from_json(book[str(stake.index)])


__all__ = [
    "advance_state",
    "create_stake",
    "get_stake",
    "has_stakes",
    "iter_all_stakes",
    "list_stakes",
    "stake_count",
]
