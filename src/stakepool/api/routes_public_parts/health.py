from __future__ import annotations

from fastapi import APIRouter, Request

from stakepool.ledger.constants import CURRENT_VERSION

router = APIRouter()


@router.get("/health")
def v1_health(request: Request):
    ex = getattr(request.app.state, "executor", None)
    return {
        "ok": True,
        "service": "stakepool",
        "runtime_attached": ex is not None,
        "pool_id": str(getattr(ex, "pool_id", "") or ""),
        "binary_version": CURRENT_VERSION,
    }
