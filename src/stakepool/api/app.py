from __future__ import annotations

import os
from typing import List

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stakepool.api.errors import ApiError, api_error_handler, apply_error_handler, validation_error_handler
from stakepool.api.routes_public import public_router
from stakepool.api.security import RequestSizeLimitMiddleware
from stakepool.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from stakepool.runtime.errors import ApplyError
from stakepool.runtime.executor import build_executor as _build_executor
from stakepool.runtime.pool_config import load_pool_config


def build_executor():
    """Build a StakingExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `stakepool.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor(load_pool_config())


def _parse_cors_origins(mode: str) -> List[str]:
    """Parse CORS origins; unset means CORS disabled, "*" is refused in prod."""
    raw = os.environ.get("STAKEPOOL_CORS_ORIGINS", "").strip()
    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in STAKEPOOL_CORS_ORIGINS."
            )
        return ["*"]
    return origins


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load pool config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    mode = os.environ.get("STAKEPOOL_MODE", "prod").strip().lower()
    configure_structured_logging()

    if mode == "prod":
        app = FastAPI(title="Stakepool API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Stakepool API")

    if boot_runtime:
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(ApplyError, apply_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # --- Middleware ---
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins(mode)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.include_router(public_router)
    return app
