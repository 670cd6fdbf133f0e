# src/stakepool/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from stakepool.ledger.state import ensure_pool
from stakepool.runtime.errors import E_DOMAIN_ERROR, E_INVALID_PAYLOAD, E_TX_UNIMPLEMENTED, ApplyError
from stakepool.runtime.tx_types import TxEnvelope

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from stakepool.runtime.apply.admin import ADMIN_TX_TYPES, apply_admin
from stakepool.runtime.apply.staking import STAKING_TX_TYPES, apply_staking

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any], Optional[Json]]


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_staking,
    apply_admin,
)

SUPPORTED_TX_TYPES = frozenset(STAKING_TX_TYPES | ADMIN_TX_TYPES)


def _tx_type(env: Any) -> str:
    return str(getattr(env, "tx_type", "") or "").strip().upper()


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    Mutates `state` directly; use apply_tx_atomic() for all-or-nothing
    semantics.
    """

    try:
        ensure_pool(state)
    except TypeError as e:
        raise ApplyError(E_INVALID_PAYLOAD, "state_has_no_pool", {"error": str(e)}) from e

    # Tests and some tools pass raw dict envelopes. Normalize to TxEnvelope so
    # domain appliers can rely on attribute access.
    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError(E_INVALID_PAYLOAD, "missing_tx_type", {"tx_type": t})

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                E_DOMAIN_ERROR,
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError(E_TX_UNIMPLEMENTED, "tx_type_not_implemented", {"tx_type": t})


__all__ = ["SUPPORTED_TX_TYPES", "apply_tx"]
