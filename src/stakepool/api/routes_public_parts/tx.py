from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakepool.api.errors import ApiError
from stakepool.api.routes_public_parts.common import _executor
from stakepool.api.schemas import TxSubmitRequest
from stakepool.runtime.domain_apply import SUPPORTED_TX_TYPES

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Apply a single tx envelope synchronously.

    Returns:
      { ok, receipt } on success. Rejections surface as
      { ok: false, error: {code, message, details} } with status 400.
    """
    env = body.to_envelope_json()
    if env["tx_type"] not in SUPPORTED_TX_TYPES:
        raise ApiError.bad_request("tx_unimplemented", "unknown tx_type", {"tx_type": env["tx_type"]})
    return _executor(request).submit(env)
