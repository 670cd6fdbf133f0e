from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from stakepool.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()

MAX_EVENTS_PAGE = 500


@router.get("/events")
def v1_events(request: Request, after: Optional[str] = None, limit: Optional[str] = None):
    """Committed events in seq order, for indexers tailing the pool."""
    a = max(0, _int_param(after, 0))
    n = min(MAX_EVENTS_PAGE, max(1, _int_param(limit, 100)))
    evs = _executor(request).events(after=a, limit=n)
    next_after = int(evs[-1]["seq"]) if evs else a
    return {"ok": True, "events": evs, "next_after": next_after}
