from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Error codes surfaced by aborted operations. Every precondition failure
# aborts the whole transition; there is no user/system distinction.
E_STAKER_NOT_FOUND = "staker_not_found"
E_INVALID_PLAN_INDEX = "invalid_plan_index"
E_INVALID_STAKE_PERIOD = "invalid_stake_period"
E_POOL_PAUSED = "pool_paused"
E_UNSTAKE_DELAY_NOT_MET = "unstake_delay_not_met"
E_INVALID_AMOUNT = "invalid_amount"
E_ZERO_AMOUNT = "zero_amount"
E_MAX_STAKES_REACHED = "max_stakes_reached"
E_INSUFFICIENT_REWARD_POOL = "insufficient_reward_pool"
E_POOL_LIMIT_EXCEEDED = "pool_limit_exceeded"
E_UNAUTHORIZED = "unauthorized"
E_WRONG_ADMIN = "wrong_admin"
E_VERSION_MISMATCH = "version_mismatch"
E_NOT_IN_EMERGENCY_MODE = "not_in_emergency_mode"

# Token module / envelope level
E_INSUFFICIENT_BALANCE = "insufficient_balance"
E_INVALID_PAYLOAD = "invalid_payload"
E_TX_UNIMPLEMENTED = "tx_unimplemented"
E_BAD_SIGNATURE = "bad_signature"
E_BAD_NONCE = "bad_nonce"

# Unexpected exception inside a domain applier (corrupt state document)
E_DOMAIN_ERROR = "domain_error"


@dataclass
class ApplyError(Exception):
    """Canonical error type for aborted pool operations."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    def to_json(self) -> dict:
        return {"code": self.code, "reason": self.reason, "details": self.details if self.details is not None else {}}
