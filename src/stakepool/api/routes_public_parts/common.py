from __future__ import annotations

from typing import Any, Callable, Dict, TypeVar

from fastapi import Request

from stakepool.api.errors import ApiError
from stakepool.ledger.state import PoolView
from stakepool.runtime.errors import ApplyError

Json = Dict[str, Any]
T = TypeVar("T")


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> PoolView:
    return _executor(request).view()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except Exception:
        return int(default)


def _lookup(fn: Callable[[], T]) -> T:
    """Run a read against the pool view; a miss becomes a 404."""
    try:
        return fn()
    except ApplyError as e:
        raise ApiError.not_found(e.code, e.reason, e.details if isinstance(e.details, dict) else {}) from e
