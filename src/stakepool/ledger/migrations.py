# src/stakepool/ledger/migrations.py
from __future__ import annotations

from typing import Any, Callable, Dict, List

from stakepool.ledger.constants import (
    CURRENT_VERSION,
    DEFAULT_MAX_POOL_BALANCE,
    DEFAULT_MAX_STAKE_AMOUNT,
    DEFAULT_MAX_STAKES_PER_OWNER,
    DEFAULT_MIN_STAKE_AMOUNT,
)
from stakepool.runtime.errors import E_VERSION_MISMATCH, ApplyError

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _ensure_int(root: Json, key: str, default: int = 0) -> int:
    if key not in root:
        root[key] = int(default)
        return int(default)
    x = _as_int(root.get(key), default)
    root[key] = int(x)
    return int(x)


def _ensure_bool(root: Json, key: str, default: bool = False) -> bool:
    """Normalize a stored flag; only an absent flag takes the default."""
    if key not in root or root.get(key) is None:
        root[key] = bool(default)
        return bool(default)
    v = root.get(key)
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        root[key] = bool(v)
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in {"1", "true", "yes", "y", "on"}:
            root[key] = True
            return True
        if s in {"0", "false", "no", "n", "off"}:
            root[key] = False
            return False
    # Guessing would revive a retired plan or unpause the pool.
    raise ApplyError(E_VERSION_MISMATCH, "malformed_flag", {"key": key, "value": repr(v)})


def _migrate_v1_to_v2(pool: Json) -> Json:
    """
    v1 -> v2: introduce per-plan amount bounds and pool-wide limits.

    v1 characteristics:
      - plans carry only {index, duration, apy_bps, active}
      - no min/max stake, pool balance cap or per-owner stake cap
    """
    plans = pool.get("plans")
    if not isinstance(plans, list):
        plans = []
        pool["plans"] = plans
    for i, p in enumerate(plans):
        if not isinstance(p, dict):
            raise ApplyError(E_VERSION_MISMATCH, "malformed_plan_record", {"plan_index": i})
        p["index"] = i
        _ensure_int(p, "min_amount", 0)
        _ensure_int(p, "max_amount", 0)
        _ensure_bool(p, "active", True)

    _ensure_int(pool, "min_stake_amount", DEFAULT_MIN_STAKE_AMOUNT)
    _ensure_int(pool, "max_stake_amount", DEFAULT_MAX_STAKE_AMOUNT)
    _ensure_int(pool, "max_stakes_per_owner", DEFAULT_MAX_STAKES_PER_OWNER)

    # Never set the cap below what is already staked.
    cap = _ensure_int(pool, "max_pool_balance", DEFAULT_MAX_POOL_BALANCE)
    total = _as_int(pool.get("total_staked"), 0)
    if cap < total:
        pool["max_pool_balance"] = total

    _ensure_bool(pool, "paused", False)
    _ensure_bool(pool, "emergency_mode", False)

    pool["schema_version"] = 2
    return pool


_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {
    1: _migrate_v1_to_v2,
}


def migrate_pool(pool: Json) -> List[int]:
    """
    Upgrade a pool document in place to CURRENT_VERSION.

    Returns the list of source versions that were stepped through. Refuses a
    document newer than this binary (no downgrade path).
    """
    v = _as_int(pool.get("schema_version"), 0)
    if v > CURRENT_VERSION:
        raise ApplyError(
            E_VERSION_MISMATCH,
            "pool_newer_than_binary",
            {"schema_version": v, "current_version": CURRENT_VERSION},
        )

    applied: List[int] = []
    while v < CURRENT_VERSION:
        step = _MIGRATIONS.get(v)
        if step is None:
            raise ApplyError(
                E_VERSION_MISMATCH,
                "no_migration_path",
                {"schema_version": v, "current_version": CURRENT_VERSION},
            )
        step(pool)
        applied.append(v)
        v = _as_int(pool.get("schema_version"), v + 1)

    pool["schema_version"] = CURRENT_VERSION
    return applied


__all__ = ["CURRENT_VERSION", "migrate_pool"]
