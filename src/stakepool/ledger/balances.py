# src/stakepool/ledger/balances.py
from __future__ import annotations

"""Account balances of the staked token.

This is the token collaborator the pool moves funds through. Issuance is not
modelled here: balances are seeded from genesis config (or tests) and only
move between accounts and the pool's staking / reward balances.
"""

from typing import Any, Dict

from stakepool.runtime.errors import E_INSUFFICIENT_BALANCE, E_INVALID_AMOUNT, ApplyError

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _ensure_accounts(state: Json) -> Json:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        accts = {}
        state["accounts"] = accts
    return accts


def ensure_account(state: Json, account_id: str) -> Json:
    accts = _ensure_accounts(state)
    acct = accts.get(account_id)
    if not isinstance(acct, dict):
        acct = {"nonce": 0, "balance": 0}
        accts[account_id] = acct
    acct.setdefault("nonce", 0)
    acct.setdefault("balance", 0)
    return acct


def balance_of(state: Json, account_id: str) -> int:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        return 0
    acct = accts.get(account_id)
    if not isinstance(acct, dict):
        return 0
    return _as_int(acct.get("balance"), 0)


def credit(state: Json, account_id: str, amount: int) -> int:
    amt = int(amount)
    if amt < 0:
        raise ApplyError(E_INVALID_AMOUNT, "negative_credit", {"account": account_id, "amount": amt})
    acct = ensure_account(state, account_id)
    acct["balance"] = _as_int(acct.get("balance"), 0) + amt
    return int(acct["balance"])


def debit(state: Json, account_id: str, amount: int) -> int:
    amt = int(amount)
    if amt < 0:
        raise ApplyError(E_INVALID_AMOUNT, "negative_debit", {"account": account_id, "amount": amt})
    have = balance_of(state, account_id)
    if have < amt:
        raise ApplyError(
            E_INSUFFICIENT_BALANCE,
            "account_balance_too_low",
            {"account": account_id, "balance": have, "amount": amt},
        )
    acct = ensure_account(state, account_id)
    acct["balance"] = have - amt
    return int(acct["balance"])


__all__ = ["balance_of", "credit", "debit", "ensure_account"]
