from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TxEnvelope:
    """A single caller request against the pool.

    ts_ms is stamped by the executor from its clock, never trusted from the
    caller. admin_cap carries an AdminCap JSON for privileged operations.
    """

    tx_type: str
    signer: str
    nonce: int
    payload: Dict[str, Any]
    sig: str = ""
    ts_ms: int = 0
    admin_cap: Optional[Dict[str, Any]] = None

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        cap = j.get("admin_cap")
        return TxEnvelope(
            tx_type=str(j.get("tx_type", "")),
            signer=str(j.get("signer", "")),
            nonce=int(j.get("nonce", 0) or 0),
            payload=dict(j.get("payload", {}) or {}),
            sig=str(j.get("sig", "") or ""),
            ts_ms=int(j.get("ts_ms", 0) or 0),
            admin_cap=dict(cap) if isinstance(cap, dict) else None,
        )

    def with_ts(self, ts_ms: int) -> "TxEnvelope":
        return TxEnvelope(
            tx_type=self.tx_type,
            signer=self.signer,
            nonce=self.nonce,
            payload=self.payload,
            sig=self.sig,
            ts_ms=int(ts_ms),
            admin_cap=self.admin_cap,
        )

    def to_json(self) -> Dict[str, Any]:
        # admin_cap is a bearer secret; keep it out of anything that gets logged.
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "nonce": self.nonce,
            "payload": self.payload,
            "sig": self.sig,
            "ts_ms": self.ts_ms,
        }
