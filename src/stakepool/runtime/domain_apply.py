# src/stakepool/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict

from stakepool.runtime.domain_dispatch import SUPPORTED_TX_TYPES, apply_tx
from stakepool.runtime.errors import ApplyError
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def apply_tx_atomic(state: Json, env: Any) -> Json:
    """Apply a tx with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On ApplyError:
      - state remains unchanged.

    No partial mutation may ever be observable when a precondition fails
    halfway through a transition.
    """

    # Normalize dict envelopes for domain appliers.
    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)
    meta = apply_tx(snapshot, env_norm)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "SUPPORTED_TX_TYPES", "apply_tx", "apply_tx_atomic", "Json"]
