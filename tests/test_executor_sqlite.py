from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from stakepool.ledger.constants import DAY_SECONDS, DEFAULT_MIN_STAKE_AMOUNT, DEFAULT_PLANS
from stakepool.ledger.state import check_invariants
from stakepool.runtime.clock import FixedClock
from stakepool.runtime.domain_apply import ApplyError
from stakepool.runtime.executor import ExecutorError, StakingExecutor, build_executor, read_admin_cap
from stakepool.runtime.memory_store import MemoryPoolStore
from stakepool.runtime.pool_config import PoolConfig
from stakepool.runtime.sqlite_db import SqliteDB, SqlitePoolStore, SqliteTuning

AMOUNT = DEFAULT_MIN_STAKE_AMOUNT
ACCOUNTS = {"alice": {"nonce": 0, "balance": 10 * AMOUNT}, "treasury": {"nonce": 0, "balance": 10 * AMOUNT}}


def _sqlite_store(tmp_path: Path, pool_id: str = "pool-a") -> SqlitePoolStore:
    return SqlitePoolStore(db=SqliteDB(path=str(tmp_path / "pool.db")), pool_id=pool_id)


def _genesis(store, clock):
    return StakingExecutor.genesis(
        store=store,
        clock=clock,
        allow_unsigned_txs=True,
        plans=DEFAULT_PLANS,
        accounts=ACCOUNTS,
    )


def test_submit_stamps_clock_and_records_events(tmp_path: Path) -> None:
    clock = FixedClock(start_ms=1_000_500)
    ex, cap = _genesis(_sqlite_store(tmp_path), clock)

    out = ex.submit({"tx_type": "STAKE", "signer": "alice", "payload": {"plan_index": 0, "amount": AMOUNT}})
    assert out["ok"] is True
    ev = out["receipt"]["event"]
    assert ev["seq"] == 1
    assert ev["event"] == "StakeCreated"
    # Milliseconds truncate to whole seconds.
    assert ev["timestamp"] == 1_000
    assert out["receipt"]["stake"]["start_time"] == 1_000

    clock.advance(DAY_SECONDS)
    ex.submit({"tx_type": "UNSTAKE_REQUEST", "signer": "alice", "payload": {"stake_index": 0}})

    evs = ex.events(after=0, limit=10)
    assert [e["seq"] for e in evs] == [1, 2]
    assert [e["event"] for e in evs] == ["StakeCreated", "UnstakeRequested"]
    assert ex.events(after=1, limit=10)[0]["event"] == "UnstakeRequested"
    assert check_invariants(ex.read_state()) == []


def test_rejected_tx_leaves_store_untouched(tmp_path: Path) -> None:
    ex, _cap = _genesis(_sqlite_store(tmp_path), FixedClock())
    before = ex.read_state()

    with pytest.raises(ApplyError) as e:
        ex.submit({"tx_type": "STAKE", "signer": "alice", "payload": {"plan_index": 7, "amount": AMOUNT}})
    assert e.value.code == "invalid_plan_index"

    assert ex.read_state() == before
    assert ex.events() == []


def test_state_survives_reopen(tmp_path: Path) -> None:
    store = _sqlite_store(tmp_path)
    ex, cap = _genesis(store, FixedClock())
    ex.submit({"tx_type": "STAKE", "signer": "alice", "payload": {"plan_index": 1, "amount": AMOUNT}})

    reopened = StakingExecutor(store=_sqlite_store(tmp_path), clock=FixedClock(), allow_unsigned_txs=True)
    view = reopened.view()
    assert view.pool_info()["total_staked"] == AMOUNT
    assert view.stake_info("alice", 0)["plan"]["duration"] == 180 * DAY_SECONDS
    assert reopened.events()[0]["event"] == "StakeCreated"


def test_admin_receipt_without_event_records_nothing(tmp_path: Path) -> None:
    store = _sqlite_store(tmp_path)
    ex, cap = _genesis(store, FixedClock())

    st = store.read()
    st["pool"]["schema_version"] = 1
    store.commit(st, [])

    out = ex.submit({"tx_type": "POOL_MIGRATE", "signer": "ops", "admin_cap": cap.to_json()})
    assert out["receipt"]["event"] is None
    assert out["receipt"]["steps"] == [1]
    assert ex.events() == []


def test_genesis_refuses_existing_pool(tmp_path: Path) -> None:
    store = _sqlite_store(tmp_path)
    _genesis(store, FixedClock())
    with pytest.raises(ExecutorError):
        _genesis(store, FixedClock())


def test_executor_refuses_missing_or_foreign_pool(tmp_path: Path) -> None:
    with pytest.raises(ExecutorError):
        StakingExecutor(store=MemoryPoolStore(pool_id="nothing-here"))

    store = MemoryPoolStore(pool_id="pool-a")
    _genesis(store, FixedClock())
    store.pool_id = "pool-b"
    with pytest.raises(ExecutorError):
        StakingExecutor(store=store)


def test_executor_refuses_newer_schema(tmp_path: Path) -> None:
    store = MemoryPoolStore(pool_id="pool-a")
    _genesis(store, FixedClock())
    st = store.read()
    st["pool"]["schema_version"] = 99
    store.commit(st, [])
    with pytest.raises(ExecutorError):
        StakingExecutor(store=store)


def test_memory_store_events_are_paged() -> None:
    store = MemoryPoolStore(pool_id="pool-m")
    ex, cap = _genesis(store, FixedClock())
    for i in range(3):
        ex.submit({"tx_type": "REWARD_POOL_ADD", "signer": "treasury", "payload": {"amount": 10 + i}, "admin_cap": cap.to_json()})

    assert [e["seq"] for e in ex.events(after=1, limit=1)] == [2]
    assert [e["amount"] for e in ex.events(after=0, limit=10)] == [10, 11, 12]
    assert ex.view().pool_info()["reward_balance"] == 33


def test_concurrent_submissions_are_serialized(tmp_path: Path) -> None:
    ex, cap = _genesis(_sqlite_store(tmp_path), FixedClock())
    errors: list = []

    def _fund() -> None:
        try:
            ex.submit({"tx_type": "REWARD_POOL_ADD", "signer": "treasury", "payload": {"amount": 1}, "admin_cap": cap.to_json()})
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=_fund) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert ex.view().pool_info()["reward_balance"] == 8
    assert [e["seq"] for e in ex.events(limit=100)] == list(range(1, 9))


def test_build_executor_writes_admin_cap(tmp_path: Path) -> None:
    cfg = PoolConfig(
        pool_id="pool-cfg",
        mode="dev",
        db_path=str(tmp_path / "data" / "pool.db"),
        admin_cap_path=str(tmp_path / "data" / "admin_cap.json"),
        api_host="127.0.0.1",
        api_port=8080,
        allow_unsigned_txs=True,
        log_level="INFO",
        accounts=ACCOUNTS,
    )
    ex = build_executor(cfg, clock=FixedClock())
    cap = read_admin_cap(cfg.admin_cap_path)
    assert cap is not None
    assert cap.pool_id == "pool-cfg"
    assert json.loads(Path(cfg.admin_cap_path).read_text())["cap_id"] == cap.cap_id

    out = ex.submit({"tx_type": "EMERGENCY_PAUSE", "signer": "ops", "admin_cap": cap.to_json()})
    assert out["receipt"]["event"]["action"] == "pause"

    # Second boot reuses the stored pool and does not mint a new capability.
    build_executor(cfg, clock=FixedClock())
    assert read_admin_cap(cfg.admin_cap_path) == cap
    assert build_executor(cfg).view().pool_info()["paused"] is True


def test_sqlite_tuning_follows_mode_and_rejects_bad_sync(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STAKEPOOL_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("STAKEPOOL_MODE", "prod")
    assert SqliteTuning.from_env().synchronous == "FULL"

    monkeypatch.setenv("STAKEPOOL_MODE", "dev")
    assert SqliteTuning.from_env().synchronous == "NORMAL"

    monkeypatch.setenv("STAKEPOOL_SQLITE_SYNCHRONOUS", "sometimes")
    assert SqliteTuning.from_env().synchronous == "NORMAL"

    monkeypatch.setenv("STAKEPOOL_SQLITE_WRITE_DEADLINE_MS", "10")
    assert SqliteTuning.from_env().write_deadline_ms == 250


def test_failed_write_tx_rolls_back(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "rb.db"))
    db.init_schema()
    with pytest.raises(RuntimeError):
        with db.write_tx() as con:
            con.execute("INSERT INTO meta(key, value) VALUES('probe', 'x');")
            raise RuntimeError("boom")
    with db.connection() as con:
        assert con.execute("SELECT 1 FROM meta WHERE key='probe';").fetchone() is None
