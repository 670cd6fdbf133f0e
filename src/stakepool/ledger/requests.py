# src/stakepool/ledger/requests.py
from __future__ import annotations

"""Pending withdrawal requests, bound one-to-one to a stake index.

requests_by_owner[owner][str(stake_index)] -> UnstakeRequest JSON. A request
is written exactly once and never mutated afterwards.
"""

from typing import Any, Dict, List, Optional

from stakepool.ledger.types import UnstakeRequest
from stakepool.runtime.errors import E_INVALID_STAKE_PERIOD, E_STAKER_NOT_FOUND, ApplyError

Json = Dict[str, Any]


def _ensure_requests_root(pool: Json) -> Json:
    root = pool.get("requests_by_owner")
    if not isinstance(root, dict):
        root = {}
        pool["requests_by_owner"] = root
    return root


def find_request(pool: Json, owner: str, stake_index: int) -> Optional[UnstakeRequest]:
    book = _ensure_requests_root(pool).get(owner)
    if not isinstance(book, dict):
        return None
    rec = book.get(str(int(stake_index)))
    return UnstakeRequest.from_json(rec) if isinstance(rec, dict) else None


def get_request(pool: Json, owner: str, stake_index: int) -> UnstakeRequest:
    req = find_request(pool, owner, stake_index)
    if req is None:
        raise ApplyError(
            E_STAKER_NOT_FOUND,
            "unstake_request_not_found",
            {"owner": owner, "stake_index": int(stake_index)},
        )
    return req


def record_request(pool: Json, req: UnstakeRequest) -> UnstakeRequest:
    root = _ensure_requests_root(pool)
    book = root.get(req.owner)
    if not isinstance(book, dict):
        book = {}
        root[req.owner] = book
    key = str(int(req.stake_index))
    if key in book:
        raise ApplyError(
            E_INVALID_STAKE_PERIOD,
            "unstake_request_exists",
            {"owner": req.owner, "stake_index": int(req.stake_index)},
        )
    book[key] = req.to_json()
    return req


def list_requests(pool: Json, owner: str) -> List[UnstakeRequest]:
    book = _ensure_requests_root(pool).get(owner)
    if not isinstance(book, dict):
        return []
    return [UnstakeRequest.from_json(book[k]) for k in sorted(book.keys(), key=int)]


__all__ = ["find_request", "get_request", "list_requests", "record_request"]
