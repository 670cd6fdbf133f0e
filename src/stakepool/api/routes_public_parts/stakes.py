from __future__ import annotations

from fastapi import APIRouter, Request

from stakepool.api.routes_public_parts.common import _lookup, _view

router = APIRouter()


@router.get("/stakes/{owner}")
def v1_stakes_of(owner: str, request: Request):
    stakes = _view(request).stakes_of(owner)
    return {"ok": True, "owner": owner, "count": len(stakes), "stakes": stakes}


@router.get("/stakes/{owner}/{index}")
def v1_stake_get(owner: str, index: int, request: Request):
    v = _view(request)
    return {"ok": True, "stake": _lookup(lambda: v.stake_info(owner, index))}


@router.get("/stakes/{owner}/{index}/status")
def v1_stake_status(owner: str, index: int, request: Request):
    v = _view(request)
    return {"ok": True, "owner": owner, "stake_index": index, "state": _lookup(lambda: v.stake_status(owner, index))}


@router.get("/unstake_requests/{owner}/{index}")
def v1_unstake_request_get(owner: str, index: int, request: Request):
    """The request is null while the stake is still in the staked state."""
    v = _view(request)
    return {"ok": True, "request": _lookup(lambda: v.unstake_request_info(owner, index))}
