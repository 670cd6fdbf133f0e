# src/stakepool/runtime/tx_admission.py
from __future__ import annotations

from typing import Any, Dict

from stakepool.crypto.sig import canonical_tx_message, verify_ed25519_signature
from stakepool.runtime.errors import E_BAD_NONCE, E_BAD_SIGNATURE, E_UNAUTHORIZED, ApplyError
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def _account(state: Json, account_id: str) -> Json:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        return {}
    acct = accts.get(account_id)
    return acct if isinstance(acct, dict) else {}


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def admit_tx(state: Json, env: TxEnvelope, *, allow_unsigned: bool) -> None:
    """Authenticate the caller identity of an envelope.

    With allow_unsigned the signer string is trusted as-is (dev/test).
    Otherwise the signer must have a registered ed25519 pubkey, sign the
    canonical message, and use exactly the next nonce.
    """
    signer = str(env.signer or "").strip()
    if not signer:
        raise ApplyError(E_UNAUTHORIZED, "missing_signer", {"tx_type": env.tx_type})
    if allow_unsigned:
        return

    acct = _account(state, signer)
    pubkey = str(acct.get("pubkey") or "").strip()
    if not pubkey:
        raise ApplyError(E_BAD_SIGNATURE, "no_registered_pubkey", {"signer": signer})

    expected = _as_int(acct.get("nonce"), 0) + 1
    if int(env.nonce) != expected:
        raise ApplyError(E_BAD_NONCE, "unexpected_nonce", {"signer": signer, "nonce": env.nonce, "expected": expected})

    msg = canonical_tx_message(tx_type=env.tx_type, signer=signer, nonce=int(env.nonce), payload=env.payload)
    if not env.sig or not verify_ed25519_signature(message=msg, sig=env.sig, pubkey=pubkey):
        raise ApplyError(E_BAD_SIGNATURE, "signature_invalid", {"signer": signer, "tx_type": env.tx_type})


def consume_nonce(state: Json, env: TxEnvelope) -> None:
    """Record the nonce of a committed tx. Only called after a successful apply."""
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        return
    acct = accts.get(str(env.signer or "").strip())
    if not isinstance(acct, dict):
        return
    if int(env.nonce) > _as_int(acct.get("nonce"), 0):
        acct["nonce"] = int(env.nonce)


__all__ = ["admit_tx", "consume_nonce"]
