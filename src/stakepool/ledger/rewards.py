# src/stakepool/ledger/rewards.py
from __future__ import annotations

"""Reward and early-exit penalty arithmetic.

Pure functions over a Stake and the current time (whole seconds). All
arithmetic is integer; division truncates toward zero for the non-negative
operands used here.
"""

from typing import Union

from stakepool.ledger.constants import BPS_DENOMINATOR, REWARD_SCALE, YEAR_SECONDS
from stakepool.ledger.types import Json, Stake


def _stake(s: Union[Stake, Json]) -> Stake:
    return s if isinstance(s, Stake) else Stake.from_json(s)


def calculate_penalty(stake: Union[Stake, Json], *, now: int, penalty_rate_bps: int) -> int:
    """Penalty owed when exit is requested at `now`.

    Zero at or after maturity; otherwise floor(amount * rate / 10000).
    """
    st = _stake(stake)
    if int(now) >= int(st.end_time):
        return 0
    rate = max(int(penalty_rate_bps), 0)
    return (int(st.amount) * rate) // BPS_DENOMINATOR


def calculate_reward(stake: Union[Stake, Json]) -> int:
    """Reward for a full term of the stake's plan snapshot.

    The principal is divided by REWARD_SCALE first, and the year fraction is
    taken with integer division, so every plan shorter than a full year yields
    0 before the 1-unit floor applies.
    """
    st = _stake(stake)
    amount = int(st.amount)
    apy = int(st.plan.apy_bps)
    scaled_amount = amount // REWARD_SCALE
    reward = scaled_amount * apy * (int(st.plan.duration) // YEAR_SECONDS)
    if reward == 0 and amount > 0 and apy > 0:
        return 1
    return int(reward)


def reward_eligible(stake: Union[Stake, Json], *, now: int, penalty_amount: int) -> bool:
    """Reward is paid only for a matured stake whose exit carried no penalty."""
    st = _stake(stake)
    return int(now) >= int(st.end_time) and int(penalty_amount) == 0


__all__ = ["calculate_penalty", "calculate_reward", "reward_eligible"]
