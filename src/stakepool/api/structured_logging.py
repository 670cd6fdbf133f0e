# src/stakepool/api/structured_logging.py
from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from stakepool.runtime.runtime_logging import log_event

Json = Dict[str, Any]

_ON = {"1", "true", "yes", "y", "on"}
_OFF = {"0", "false", "no", "n", "off"}

# Only these request headers are ever copied into the access log.
_LOGGED_HEADERS = ("user-agent", "content-type", "content-length", "x-forwarded-for")


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if raw in _ON:
        return True
    if raw in _OFF:
        return False
    return default


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Send all records to stdout as bare messages (each one a JSON line from log_event).

    The level comes from ``level_name``, then STAKEPOOL_LOG_LEVEL, then INFO.
    A second call only adjusts the level.
    """
    name = (level_name or os.environ.get("STAKEPOOL_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_stakepool_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    root._stakepool_configured = True  # type: ignore[attr-defined]


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One ``http_request`` event per request, tagged with an x-request-id.

    STAKEPOOL_LOG_REQUESTS=0 turns it off; STAKEPOOL_LOG_REQUEST_HEADERS=1 adds
    a fixed subset of request headers.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = _env_flag("STAKEPOOL_LOG_REQUESTS", True)
        self._with_headers = _env_flag("STAKEPOOL_LOG_REQUEST_HEADERS", False)
        self._logger = logging.getLogger("stakepool.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        t0 = time.monotonic()

        fields: Json = {
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "",
        }
        if self._with_headers:
            fields["headers"] = {h: request.headers[h] for h in _LOGGED_HEADERS if h in request.headers}

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(
                self._logger,
                "http_request",
                status=500,
                duration_ms=int((time.monotonic() - t0) * 1000),
                error=type(e).__name__,
                **fields,
            )
            raise

        response.headers.setdefault("x-request-id", rid)
        log_event(
            self._logger,
            "http_request",
            status=response.status_code,
            duration_ms=int((time.monotonic() - t0) * 1000),
            **fields,
        )
        return response


__all__ = ["RequestLogMiddleware", "configure_structured_logging", "log_event"]
