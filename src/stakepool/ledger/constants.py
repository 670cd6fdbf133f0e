# src/stakepool/ledger/constants.py
from __future__ import annotations

"""Staking pool constants.

Amounts are integer base units of the staked token. Rates are basis points.
Times are whole seconds derived from a millisecond clock.
"""

BPS_DENOMINATOR: int = 10_000

# Reward formula divides the principal down before multiplying (overflow guard
# carried over from fixed-width arithmetic).
REWARD_SCALE: int = 10_000

DAY_SECONDS: int = 86_400
YEAR_SECONDS: int = 365 * DAY_SECONDS

# Schema version of the pool document this binary operates on.
# Increment this when you add a new migration step.
CURRENT_VERSION: int = 2

# Stake lifecycle, in the only order it may advance.
STAKE_STAKED: str = "staked"
STAKE_UNSTAKE_REQUESTED: str = "unstake_requested"
STAKE_WITHDRAWN: str = "withdrawn"
STAKE_STATES = (STAKE_STAKED, STAKE_UNSTAKE_REQUESTED, STAKE_WITHDRAWN)

# Genesis defaults (1 token = 1e9 base units)
TOKEN_DECIMALS: int = 9
TOKEN: int = 10**TOKEN_DECIMALS

DEFAULT_UNSTAKE_DELAY: int = 7 * DAY_SECONDS
DEFAULT_EARLY_PENALTY_RATE_BPS: int = 500
DEFAULT_MIN_STAKE_AMOUNT: int = 10_000 * TOKEN
DEFAULT_MAX_STAKE_AMOUNT: int = 10_000_000 * TOKEN
DEFAULT_MAX_POOL_BALANCE: int = 1_000_000_000 * TOKEN
DEFAULT_MAX_STAKES_PER_OWNER: int = 100

# (duration_seconds, apy_bps)
DEFAULT_PLANS = (
    (90 * DAY_SECONDS, 500),
    (180 * DAY_SECONDS, 800),
    (365 * DAY_SECONDS, 1200),
)
