#!/usr/bin/env python3

"""Production-ish smoke test for the staking pool.

It verifies:
  - the executor boots on a fresh SQLite db and writes the admin capability
  - the FastAPI app serves /v1/health and /v1/pool
  - a stake round-trips through POST /v1/tx/submit and the event log

Usage:
  python3 scripts/prod_smoke.py
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from stakepool.api.app import create_app
from stakepool.ledger.constants import DEFAULT_MIN_STAKE_AMOUNT

_CONFIG = """
pool_id: smoke-pool
mode: dev
db_path: {db_path}
admin_cap_path: {cap_path}
allow_unsigned_txs: true
accounts:
  smoke: {{balance: {balance}}}
"""


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="stakepool-smoke-") as td:
        cfg_path = Path(td) / "pool.yaml"
        cap_path = Path(td) / "admin_cap.json"
        cfg_path.write_text(
            _CONFIG.format(
                db_path=os.path.join(td, "pool.db"),
                cap_path=str(cap_path),
                balance=10 * DEFAULT_MIN_STAKE_AMOUNT,
            ),
            encoding="utf-8",
        )
        os.environ["STAKEPOOL_CONFIG_PATH"] = str(cfg_path)
        os.environ.setdefault("STAKEPOOL_MODE", "dev")

        app = create_app(boot_runtime=True)
        c = TestClient(app)

        r = c.get("/v1/health")
        assert r.status_code == 200, r.text
        assert r.json().get("pool_id") == "smoke-pool"

        cap = json.loads(cap_path.read_text(encoding="utf-8"))
        assert cap.get("pool_id") == "smoke-pool"

        r = c.post(
            "/v1/tx/submit",
            json={
                "tx_type": "STAKE",
                "signer": "smoke",
                "payload": {"plan_index": 0, "amount": DEFAULT_MIN_STAKE_AMOUNT},
            },
        )
        assert r.status_code == 200, r.text

        pool = c.get("/v1/pool").json()["pool"]
        if pool["total_staked"] != DEFAULT_MIN_STAKE_AMOUNT:
            raise RuntimeError(f"unexpected total_staked: {pool['total_staked']}")

        evs = c.get("/v1/events").json()["events"]
        if [e["event"] for e in evs] != ["StakeCreated"]:
            raise RuntimeError(f"unexpected event log: {evs}")

        print("OK: health + stake + event log", {"total_staked": pool["total_staked"], "events": len(evs)})
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
