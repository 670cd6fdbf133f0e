"""stakepool.ledger.types

Record types stored in the pool document.

The pool itself is a JSON-backed dict so it can be deep-copied for atomic
apply and persisted as canonical JSON. These dataclasses are the typed view
of its nested records; `to_json()` / `from_json()` convert at the boundary.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from stakepool.ledger.constants import STAKE_STAKED, STAKE_STATES

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return int(default)
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


@dataclass(frozen=True, slots=True)
class Plan:
    """A term offering stakes are created against.

    min_amount / max_amount of 0 mean "no plan-level bound".
    """

    index: int
    duration: int
    apy_bps: int
    active: bool = True
    min_amount: int = 0
    max_amount: int = 0

    def to_json(self) -> Json:
        return {
            "index": int(self.index),
            "duration": int(self.duration),
            "apy_bps": int(self.apy_bps),
            "active": bool(self.active),
            "min_amount": int(self.min_amount),
            "max_amount": int(self.max_amount),
        }

    @staticmethod
    def from_json(j: Any) -> "Plan":
        d = j if isinstance(j, dict) else {}
        return Plan(
            index=_as_int(d.get("index"), 0),
            duration=_as_int(d.get("duration"), 0),
            apy_bps=_as_int(d.get("apy_bps"), 0),
            active=bool(d.get("active", False)),
            min_amount=_as_int(d.get("min_amount"), 0),
            max_amount=_as_int(d.get("max_amount"), 0),
        )


@dataclass(frozen=True, slots=True)
class Stake:
    index: int
    owner: str
    amount: int
    start_time: int
    end_time: int
    plan: Plan
    state: str = STAKE_STAKED

    def is_mature(self, now: int) -> bool:
        return int(now) >= int(self.end_time)

    def to_json(self) -> Json:
        return {
            "index": int(self.index),
            "owner": str(self.owner),
            "amount": int(self.amount),
            "start_time": int(self.start_time),
            "end_time": int(self.end_time),
            # Snapshot copy, never a reference into the plan registry.
            "plan": self.plan.to_json(),
            "state": str(self.state),
        }

    @staticmethod
    def from_json(j: Any) -> "Stake":
        d = j if isinstance(j, dict) else {}
        state = _as_str(d.get("state")) or STAKE_STAKED
        if state not in STAKE_STATES:
            raise ValueError(f"unknown stake state: {state!r}")
        return Stake(
            index=_as_int(d.get("index"), 0),
            owner=_as_str(d.get("owner")),
            amount=_as_int(d.get("amount"), 0),
            start_time=_as_int(d.get("start_time"), 0),
            end_time=_as_int(d.get("end_time"), 0),
            plan=Plan.from_json(d.get("plan")),
            state=state,
        )


@dataclass(frozen=True, slots=True)
class UnstakeRequest:
    owner: str
    stake_index: int
    request_time: int
    penalty_amount: int

    def to_json(self) -> Json:
        return {
            "owner": str(self.owner),
            "stake_index": int(self.stake_index),
            "request_time": int(self.request_time),
            "penalty_amount": int(self.penalty_amount),
        }

    @staticmethod
    def from_json(j: Any) -> "UnstakeRequest":
        d = j if isinstance(j, dict) else {}
        return UnstakeRequest(
            owner=_as_str(d.get("owner")),
            stake_index=_as_int(d.get("stake_index"), 0),
            request_time=_as_int(d.get("request_time"), 0),
            penalty_amount=_as_int(d.get("penalty_amount"), 0),
        )


@dataclass(frozen=True, slots=True)
class AdminCap:
    """Capability authorizing privileged mutation of exactly one pool.

    Possession of `cap_id` is the authority; `pool_id` binds it to a pool so a
    capability minted for one deployment cannot act on another.
    """

    pool_id: str
    cap_id: str = field(repr=False)

    @staticmethod
    def mint(pool_id: str) -> "AdminCap":
        return AdminCap(pool_id=str(pool_id), cap_id=secrets.token_hex(16))

    def to_json(self) -> Json:
        return {"pool_id": self.pool_id, "cap_id": self.cap_id}

    @staticmethod
    def from_json(j: Any) -> Optional["AdminCap"]:
        if isinstance(j, AdminCap):
            return j
        if not isinstance(j, dict):
            return None
        pool_id = _as_str(j.get("pool_id"))
        cap_id = _as_str(j.get("cap_id"))
        if not pool_id or not cap_id:
            return None
        return AdminCap(pool_id=pool_id, cap_id=cap_id)


__all__ = ["AdminCap", "Json", "Plan", "Stake", "UnstakeRequest"]
