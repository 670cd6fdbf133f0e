from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; the apply layer re-validates
every payload field it reads.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AdminCapModel(BaseModel):
    pool_id: str = Field(..., description="Pool the capability is bound to")
    cap_id: str = Field(..., description="Capability secret")


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="e.g. STAKE, UNSTAKE_REQUEST, PLAN_ADD")
    signer: str = Field(..., min_length=1, description="Caller account id")
    nonce: int = Field(default=0, ge=0, description="Next account nonce (signed mode)")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex/base64 ed25519 signature over the canonical tx message")

    # Required for administrative operations only.
    admin_cap: Optional[AdminCapModel] = None

    model_config = {"extra": "forbid"}

    def to_envelope_json(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type.strip().upper(),
            "signer": self.signer.strip(),
            "nonce": int(self.nonce),
            "payload": dict(self.payload),
            "sig": self.sig,
            "admin_cap": self.admin_cap.model_dump() if self.admin_cap is not None else None,
        }
