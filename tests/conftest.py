from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import pytest

# Ensure local "src/" takes precedence over any globally-installed "stakepool" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from stakepool.ledger.constants import DEFAULT_PLANS  # noqa: E402
from stakepool.ledger.state import new_pool_state  # noqa: E402
from stakepool.ledger.types import AdminCap  # noqa: E402
from stakepool.runtime.tx_types import TxEnvelope  # noqa: E402

Json = Dict[str, Any]

# Scenario amounts: 10_000 whole tokens at 9 decimals.
STAKE_AMOUNT = 10_000_000_000_000
START_BALANCE = 100 * STAKE_AMOUNT


@pytest.fixture
def pool_state() -> Tuple[Json, AdminCap]:
    """Default-parameter pool with three funded accounts."""
    accounts = {
        "alice": {"nonce": 0, "balance": START_BALANCE},
        "bob": {"nonce": 0, "balance": START_BALANCE},
        "treasury": {"nonce": 0, "balance": START_BALANCE},
    }
    return new_pool_state(pool_id="pool-test", plans=DEFAULT_PLANS, accounts=accounts)


@pytest.fixture
def make_tx() -> Callable[..., TxEnvelope]:
    def _make(
        tx_type: str,
        signer: str,
        payload: Optional[Json] = None,
        *,
        at: int = 0,
        cap: Optional[AdminCap] = None,
        nonce: int = 1,
    ) -> TxEnvelope:
        return TxEnvelope(
            tx_type=tx_type,
            signer=signer,
            nonce=nonce,
            payload=dict(payload or {}),
            ts_ms=int(at) * 1000,
            admin_cap=cap.to_json() if cap is not None else None,
        )

    return _make
