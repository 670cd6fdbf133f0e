# src/stakepool/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from stakepool.api.routes_public_parts.events import router as events_router
from stakepool.api.routes_public_parts.health import router as health_router
from stakepool.api.routes_public_parts.pool import router as pool_router
from stakepool.api.routes_public_parts.stakes import router as stakes_router
from stakepool.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(pool_router, prefix="/v1", tags=["pool"])
public_router.include_router(stakes_router, prefix="/v1", tags=["stakes"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
