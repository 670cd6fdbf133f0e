# src/stakepool/runtime/apply/common.py
from __future__ import annotations

import secrets
from typing import Any, Dict, Optional

from stakepool.ledger.constants import CURRENT_VERSION
from stakepool.ledger.types import AdminCap
from stakepool.runtime.errors import (
    E_INVALID_AMOUNT,
    E_INVALID_PAYLOAD,
    E_UNAUTHORIZED,
    E_VERSION_MISMATCH,
    E_WRONG_ADMIN,
    E_ZERO_AMOUNT,
    ApplyError,
)
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) and not isinstance(v, bool) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def now_s(env: TxEnvelope) -> int:
    """Trusted time of the request in whole seconds."""
    return int(env.ts_ms) // 1000


def signer_of(env: TxEnvelope) -> str:
    s = _as_str(env.signer)
    if not s:
        raise ApplyError(E_UNAUTHORIZED, "missing_signer", {"tx_type": env.tx_type})
    return s


def payload_int(env: TxEnvelope, key: str, default: Optional[int] = None) -> int:
    payload = _as_dict(env.payload)
    if key not in payload or payload.get(key) is None:
        if default is None:
            raise ApplyError(E_INVALID_PAYLOAD, f"missing_{key}", {"tx_type": env.tx_type})
        return int(default)
    v = payload.get(key)
    if isinstance(v, bool):
        raise ApplyError(E_INVALID_PAYLOAD, f"{key}_not_int", {"tx_type": env.tx_type, key: v})
    if isinstance(v, float) and not v.is_integer():
        raise ApplyError(E_INVALID_PAYLOAD, f"{key}_not_int", {"tx_type": env.tx_type, key: v})
    try:
        return int(v)
    except Exception:
        raise ApplyError(E_INVALID_PAYLOAD, f"{key}_not_int", {"tx_type": env.tx_type, key: v})


def payload_bool(env: TxEnvelope, key: str, default: Optional[bool] = None) -> bool:
    payload = _as_dict(env.payload)
    v = payload.get(key)
    if v is None:
        if default is None:
            raise ApplyError(E_INVALID_PAYLOAD, f"missing_{key}", {"tx_type": env.tx_type})
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    raise ApplyError(E_INVALID_PAYLOAD, f"{key}_not_bool", {"tx_type": env.tx_type, key: v})


def payload_str(env: TxEnvelope, key: str, default: str = "") -> str:
    return _as_str(_as_dict(env.payload).get(key)) or default


def positive_amount(env: TxEnvelope, key: str = "amount") -> int:
    amt = payload_int(env, key)
    if amt == 0:
        raise ApplyError(E_ZERO_AMOUNT, f"{key}_is_zero", {"tx_type": env.tx_type})
    if amt < 0:
        raise ApplyError(E_INVALID_AMOUNT, f"{key}_negative", {"tx_type": env.tx_type, key: amt})
    return amt


def require_version(pool: Json, tx_type: str) -> None:
    have = _as_int(pool.get("schema_version"), 0)
    if have != CURRENT_VERSION:
        raise ApplyError(
            E_VERSION_MISMATCH,
            "pool_schema_version_mismatch",
            {"tx_type": tx_type, "schema_version": have, "current_version": CURRENT_VERSION},
        )


def require_admin(pool: Json, env: TxEnvelope) -> AdminCap:
    """Check the presented capability is the one minted for this pool."""
    cap = AdminCap.from_json(env.admin_cap)
    if cap is None:
        raise ApplyError(E_UNAUTHORIZED, "admin_cap_required", {"tx_type": env.tx_type})
    if cap.pool_id != _as_str(pool.get("pool_id")):
        raise ApplyError(
            E_WRONG_ADMIN,
            "cap_bound_to_other_pool",
            {"tx_type": env.tx_type, "cap_pool_id": cap.pool_id},
        )
    if not secrets.compare_digest(cap.cap_id, _as_str(pool.get("admin_id"))):
        raise ApplyError(E_WRONG_ADMIN, "cap_id_mismatch", {"tx_type": env.tx_type})
    return cap


def make_event(name: str, *, now: int, **fields: Any) -> Json:
    ev: Json = {"event": name, "timestamp": int(now)}
    ev.update(fields)
    return ev


__all__ = [
    "make_event",
    "now_s",
    "payload_bool",
    "payload_int",
    "payload_str",
    "positive_amount",
    "require_admin",
    "require_version",
    "signer_of",
]
