from __future__ import annotations

from stakepool.ledger.constants import DAY_SECONDS, YEAR_SECONDS
from stakepool.ledger.rewards import calculate_penalty, calculate_reward, reward_eligible
from stakepool.ledger.types import Plan, Stake


def _stake(amount: int, *, duration: int, apy_bps: int, start: int = 0) -> Stake:
    plan = Plan(index=0, duration=duration, apy_bps=apy_bps)
    return Stake(index=0, owner="alice", amount=amount, start_time=start, end_time=start + duration, plan=plan)


def test_penalty_before_maturity_is_rate_of_principal() -> None:
    s = _stake(10_000_000_000_000, duration=90 * DAY_SECONDS, apy_bps=500)
    assert calculate_penalty(s, now=DAY_SECONDS, penalty_rate_bps=500) == 500_000_000_000


def test_penalty_is_zero_at_and_after_maturity() -> None:
    s = _stake(10_000_000_000_000, duration=90 * DAY_SECONDS, apy_bps=500)
    assert calculate_penalty(s, now=s.end_time, penalty_rate_bps=500) == 0
    assert calculate_penalty(s, now=s.end_time + 1, penalty_rate_bps=500) == 0


def test_penalty_truncates() -> None:
    s = _stake(19_999, duration=DAY_SECONDS, apy_bps=0)
    # 19_999 * 500 / 10_000 = 999.95
    assert calculate_penalty(s, now=0, penalty_rate_bps=500) == 999


def test_sub_year_plan_reward_floors_to_one_unit() -> None:
    s = _stake(10_000_000_000_000, duration=90 * DAY_SECONDS, apy_bps=500)
    assert calculate_reward(s) == 1


def test_full_year_plan_reward() -> None:
    s = _stake(10_000_000_000_000, duration=YEAR_SECONDS, apy_bps=1200)
    # (10e12 // 10_000) * 1200 * 1
    assert calculate_reward(s) == 1_200_000_000_000


def test_multi_year_plan_scales_with_whole_years() -> None:
    s = _stake(10_000_000_000_000, duration=2 * YEAR_SECONDS + 10 * DAY_SECONDS, apy_bps=1000)
    assert calculate_reward(s) == 1_000_000_000 * 1000 * 2


def test_zero_apy_pays_nothing() -> None:
    s = _stake(10_000_000_000_000, duration=YEAR_SECONDS, apy_bps=0)
    assert calculate_reward(s) == 0


def test_reward_accepts_stake_json() -> None:
    s = _stake(10_000_000_000_000, duration=YEAR_SECONDS, apy_bps=1200)
    assert calculate_reward(s.to_json()) == calculate_reward(s)


def test_reward_eligibility_requires_maturity_and_no_penalty() -> None:
    s = _stake(10_000_000_000_000, duration=90 * DAY_SECONDS, apy_bps=500)
    assert reward_eligible(s, now=s.end_time, penalty_amount=0) is True
    assert reward_eligible(s, now=s.end_time - 1, penalty_amount=0) is False
    assert reward_eligible(s, now=s.end_time, penalty_amount=1) is False
