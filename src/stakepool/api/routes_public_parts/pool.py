from __future__ import annotations

from fastapi import APIRouter, Request

from stakepool.api.routes_public_parts.common import _lookup, _view

router = APIRouter()


@router.get("/pool")
def v1_pool(request: Request):
    v = _view(request)
    return {"ok": True, "pool": v.pool_info(), "plans": v.plans()}


@router.get("/plans/{index}")
def v1_plan_get(index: int, request: Request):
    v = _view(request)
    return {"ok": True, "plan": _lookup(lambda: v.plan_info(index))}


@router.get("/accounts/{account}/balance")
def v1_account_balance(account: str, request: Request):
    return {"ok": True, "account": account, "balance": _view(request).balance_of(account)}
