from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from stakepool.api.errors import _error_body

DEFAULT_MAX_REQUEST_BYTES = 64_000


def _max_bytes_from_env() -> int:
    raw = (os.environ.get("STAKEPOOL_MAX_REQUEST_BYTES") or "").strip()
    try:
        return int(raw) if raw else DEFAULT_MAX_REQUEST_BYTES
    except ValueError:
        return DEFAULT_MAX_REQUEST_BYTES


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Answer 413 for bodies over STAKEPOOL_MAX_REQUEST_BYTES.

    STAKEPOOL_SIZE_LIMIT_DISABLE=1 turns the check off.
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        disabled = (os.environ.get("STAKEPOOL_SIZE_LIMIT_DISABLE") or "").strip().lower()
        self._enabled = disabled not in {"1", "true", "yes", "y", "on"}
        self._max_bytes = int(max_bytes) if max_bytes is not None else _max_bytes_from_env()
        self._exempt_prefixes = tuple(exempt_prefixes)

    def _reject(self, size: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content=_error_body("tx_too_large", "request body too large", {"size": size, "max": self._max_bytes}),
        )

    async def dispatch(self, request: Request, call_next):
        if not self._enabled or request.url.path.startswith(self._exempt_prefixes):
            return await call_next(request)

        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self._max_bytes:
            return self._reject(int(declared))

        # A chunked body carries no content-length, so measure it.
        if request.method.upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if len(body) > self._max_bytes:
                return self._reject(len(body))

        return await call_next(request)
