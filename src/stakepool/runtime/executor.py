from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from stakepool.ledger.constants import CURRENT_VERSION
from stakepool.ledger.state import PoolView, new_pool_state
from stakepool.ledger.types import AdminCap
from stakepool.runtime.clock import Clock, SystemClock
from stakepool.runtime.domain_apply import ApplyError, apply_tx_atomic
from stakepool.runtime.pool_config import PoolConfig, load_pool_config
from stakepool.runtime.runtime_logging import log_event
from stakepool.runtime.sqlite_db import SqliteDB, SqlitePoolStore
from stakepool.runtime.tx_admission import admit_tx, consume_nonce
from stakepool.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

log = logging.getLogger("stakepool.executor")


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


class PoolStore(Protocol):
    pool_id: str

    def exists(self) -> bool: ...

    def read(self) -> Json: ...

    def commit(self, st: Json, events: List[Json]) -> List[Json]: ...

    def events_since(self, after: int = 0, limit: int = 100) -> List[Json]: ...


class ExecutorError(RuntimeError):
    pass


class StakingExecutor:
    """Single-writer front door for a pool.

    Every submission runs admission, the atomic apply and the store commit
    under one lock, so two concurrent callers never interleave a read-modify-
    write of the pool document.
    """

    def __init__(self, *, store: PoolStore, clock: Optional[Clock] = None, allow_unsigned_txs: bool = False) -> None:
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self.allow_unsigned_txs = bool(allow_unsigned_txs)
        self._lock = threading.Lock()

        if not self._store.exists():
            raise ExecutorError(f"pool {store.pool_id!r} has no state; run genesis first")

        st = self._store.read()
        pool = st.get("pool") if isinstance(st.get("pool"), dict) else {}
        st_pool_id = str(pool.get("pool_id") or "").strip()
        if st_pool_id != store.pool_id:
            raise ExecutorError(
                f"pool_id mismatch: db={st_pool_id!r} executor={store.pool_id!r}. Refuse to start."
            )
        v = _safe_int(pool.get("schema_version"), 0)
        if v > CURRENT_VERSION:
            raise ExecutorError(
                f"pool schema_version {v} is newer than this binary ({CURRENT_VERSION}). Refuse to start."
            )
        if v < CURRENT_VERSION:
            # Not fatal: the admin upgrades the document with POOL_MIGRATE.
            log_event(log, "pool_needs_migration", pool_id=store.pool_id, schema_version=v, current_version=CURRENT_VERSION)

    @property
    def pool_id(self) -> str:
        return self._store.pool_id

    @property
    def clock(self) -> Clock:
        return self._clock

    @classmethod
    def genesis(
        cls,
        *,
        store: PoolStore,
        clock: Optional[Clock] = None,
        allow_unsigned_txs: bool = False,
        **pool_params: Any,
    ) -> Tuple["StakingExecutor", AdminCap]:
        """Create a new pool in an empty store. Returns (executor, admin_cap)."""
        if store.exists():
            raise ExecutorError(f"pool {store.pool_id!r} already exists; refusing to overwrite")
        st, cap = new_pool_state(pool_id=store.pool_id, **pool_params)
        store.commit(st, [])
        log_event(log, "pool_genesis", pool_id=store.pool_id, plan_count=len(st["pool"].get("plans") or []))
        return cls(store=store, clock=clock, allow_unsigned_txs=allow_unsigned_txs), cap

    # ----------------------------
    # Reads
    # ----------------------------

    def read_state(self) -> Json:
        return self._store.read()

    def view(self) -> PoolView:
        return PoolView.from_state(self._store.read())

    def events(self, *, after: int = 0, limit: int = 100) -> List[Json]:
        return self._store.events_since(after=after, limit=limit)

    # ----------------------------
    # Writes
    # ----------------------------

    def submit(self, env: Any) -> Json:
        """Admit, apply and commit a single envelope.

        Raises ApplyError on any rejection; the stored state is untouched in
        that case and the signer's nonce is not consumed.
        """
        e = TxEnvelope.from_json(env)

        with self._lock:
            e = e.with_ts(self._clock.now_ms())
            st = self._store.read()
            try:
                admit_tx(st, e, allow_unsigned=self.allow_unsigned_txs)
                receipt = apply_tx_atomic(st, e)
            except ApplyError as err:
                log_event(
                    log,
                    "tx_rejected",
                    pool_id=self.pool_id,
                    tx_type=e.tx_type,
                    signer=e.signer,
                    nonce=e.nonce,
                    code=err.code,
                    reason=err.reason,
                )
                raise

            consume_nonce(st, e)
            ev = receipt.get("event")
            recorded = self._store.commit(st, [ev] if isinstance(ev, dict) else [])

        log_event(
            log,
            "tx_applied",
            pool_id=self.pool_id,
            tx_type=e.tx_type,
            signer=e.signer,
            nonce=e.nonce,
            ts_ms=e.ts_ms,
            events=[r.get("event") for r in recorded],
        )
        out = dict(receipt)
        out["event"] = recorded[0] if recorded else None
        return {"ok": True, "receipt": out}


def write_admin_cap(path: str, cap: AdminCap) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(cap.to_json(), sort_keys=True), encoding="utf-8")
    os.chmod(tmp, 0o600)
    os.replace(tmp, p)


def read_admin_cap(path: str) -> Optional[AdminCap]:
    p = Path(path)
    if not p.exists():
        return None
    return AdminCap.from_json(json.loads(p.read_text(encoding="utf-8")))


def build_executor(cfg: Optional[PoolConfig] = None, *, clock: Optional[Clock] = None) -> StakingExecutor:
    """
    Build a StakingExecutor from an explicit config or, if omitted, from
    STAKEPOOL_CONFIG_PATH.

    An empty database is initialized from the config and the freshly minted
    admin capability is written to cfg.admin_cap_path.
    """
    c = cfg or load_pool_config()
    db = SqliteDB(path=c.db_path)
    store = SqlitePoolStore(db=db, pool_id=c.pool_id)

    if store.exists():
        return StakingExecutor(store=store, clock=clock, allow_unsigned_txs=c.allow_unsigned_txs)

    ex, cap = StakingExecutor.genesis(
        store=store,
        clock=clock,
        allow_unsigned_txs=c.allow_unsigned_txs,
        unstake_delay=c.unstake_delay,
        early_penalty_rate_bps=c.early_penalty_rate_bps,
        min_stake_amount=c.min_stake_amount,
        max_stake_amount=c.max_stake_amount,
        max_pool_balance=c.max_pool_balance,
        max_stakes_per_owner=c.max_stakes_per_owner,
        plans=c.plans,
        accounts=c.accounts,
    )
    write_admin_cap(c.admin_cap_path, cap)
    log_event(log, "admin_cap_written", pool_id=c.pool_id, path=c.admin_cap_path)
    return ex


__all__ = [
    "ExecutorError",
    "PoolStore",
    "StakingExecutor",
    "build_executor",
    "read_admin_cap",
    "write_admin_cap",
]
