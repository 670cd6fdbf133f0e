# src/stakepool/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List

Json = Dict[str, Any]

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    No default=str: a non-JSON value leaking into the pool document must fail the write.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


@dataclass(frozen=True)
class SqliteTuning:
    """Connection knobs, read once from STAKEPOOL_SQLITE_* env vars."""

    synchronous: str
    connect_timeout_ms: int
    busy_timeout_ms: int
    write_deadline_ms: int
    backoff_base_ms: int
    backoff_max_ms: int
    allow_non_wal: bool

    @classmethod
    def from_env(cls) -> "SqliteTuning":
        # prod fsyncs every commit; dev/testnet trade that for speed.
        mode = (os.environ.get("STAKEPOOL_MODE") or "prod").strip().lower()
        sync_default = "FULL" if mode == "prod" else "NORMAL"
        sync = (os.environ.get("STAKEPOOL_SQLITE_SYNCHRONOUS") or sync_default).strip().upper()
        connect_ms = max(0, _env_int("STAKEPOOL_SQLITE_CONNECT_TIMEOUT_MS", 30_000))
        base_ms = max(1, _env_int("STAKEPOOL_SQLITE_WRITE_BACKOFF_BASE_MS", 5))
        return cls(
            synchronous=sync if sync in _SYNC_LEVELS else sync_default,
            connect_timeout_ms=connect_ms,
            busy_timeout_ms=max(0, _env_int("STAKEPOOL_SQLITE_BUSY_TIMEOUT_MS", connect_ms)),
            write_deadline_ms=max(250, _env_int("STAKEPOOL_SQLITE_WRITE_DEADLINE_MS", 30_000)),
            backoff_base_ms=base_ms,
            backoff_max_ms=max(base_ms, _env_int("STAKEPOOL_SQLITE_WRITE_BACKOFF_MAX_MS", 250)),
            allow_non_wal=(os.environ.get("STAKEPOOL_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"},
        )


def _is_contention(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class SqliteDB:
    """One SQLite file holding the pool snapshot and its event log.

    Connections are opened per call and never shared between threads; SQLite's
    own file locks serialize writers across processes. Because BEGIN IMMEDIATE
    and COMMIT can both hit a held writer lock, write_tx() retries them with
    jittered exponential backoff until a deadline and then fails closed.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, tuning: SqliteTuning | None = None) -> None:
        self.path = str(path)
        self.tuning = tuning or SqliteTuning.from_env()

    def _open(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        t = self.tuning
        # isolation_level=None: transactions are issued explicitly in write_tx().
        con = sqlite3.connect(
            self.path,
            timeout=t.connect_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        journal = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        journal_mode = str(journal[0]).lower() if journal is not None else ""
        if journal_mode not in ("", "wal") and not t.allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is {journal_mode!r}; pool storage requires WAL")

        for pragma in (
            f"synchronous={t.synchronous}",
            "foreign_keys=ON",
            "temp_store=MEMORY",
            f"busy_timeout={t.busy_timeout_ms}",
        ):
            con.execute(f"PRAGMA {pragma};")
        return con

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._open()
        try:
            yield con
        finally:
            con.close()

    def _sleep_before_retry(self, attempt: int) -> None:
        t = self.tuning
        ceiling_ms = min(t.backoff_max_ms, t.backoff_base_ms * (2 ** min(attempt, 8)))
        time.sleep((ceiling_ms / 1000.0) * random.uniform(0.5, 1.5))

    def _exec_with_retry(self, con: sqlite3.Connection, stmt: str, deadline_ms: int) -> None:
        attempt = 0
        while True:
            try:
                con.execute(stmt)
                return
            except sqlite3.OperationalError as e:
                if not _is_contention(e) or _now_ms() >= deadline_ms:
                    raise
            self._sleep_before_retry(attempt)
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        deadline_ms = _now_ms() + self.tuning.write_deadline_ms
        with self.connection() as con:
            self._exec_with_retry(con, "BEGIN IMMEDIATE;", deadline_ms)
            try:
                yield con
                self._exec_with_retry(con, "COMMIT;", deadline_ms)
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS pool_state (
                  pool_id TEXT PRIMARY KEY,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  pool_id TEXT NOT NULL,
                  event TEXT NOT NULL,
                  ts INTEGER NOT NULL,
                  event_json TEXT NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_pool ON events(pool_id, seq);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            have = _int_or_zero(row["value"])
            if have != self.SCHEMA_VERSION:
                raise RuntimeError(
                    f"sqlite schema_version is {have}, this build expects {self.SCHEMA_VERSION}; refusing to open {self.path}"
                )


def _int_or_zero(v: Any) -> int:
    try:
        return int(str(v))
    except ValueError:
        return 0

class SqlitePoolStore:
    """Pool snapshot + append-only event log persisted in SQLite.

    One row per pool handle. commit() writes the new snapshot and the events
    of the transition in a single write transaction, so an indexer never sees
    an event without its state or the reverse.
    """

    def __init__(self, *, db: SqliteDB, pool_id: str) -> None:
        self._db = db
        self.pool_id = str(pool_id)
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM pool_state WHERE pool_id=?;", (self.pool_id,)).fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM pool_state WHERE pool_id=?;", (self.pool_id,)).fetchone()
        if row is None:
            raise FileNotFoundError(f"sqlite pool_state is missing for pool {self.pool_id!r}")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("pool_state is not a JSON object")
        return st

    def commit(self, st: Json, events: List[Json]) -> List[Json]:
        if not isinstance(st, dict):
            raise ValueError("pool commit expects dict")
        payload = _canon_json(st)
        now = _now_ms()
        recorded: List[Json] = []
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO pool_state(pool_id, state_json, updated_ts_ms)
                VALUES(?, ?, ?)
                ON CONFLICT(pool_id) DO UPDATE SET
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (self.pool_id, payload, now),
            )
            for ev in events:
                cur = con.execute(
                    "INSERT INTO events(pool_id, event, ts, event_json) VALUES(?, ?, ?, ?);",
                    (self.pool_id, str(ev.get("event", "")), int(ev.get("timestamp", 0)), _canon_json(ev)),
                )
                rec = dict(ev)
                rec["seq"] = int(cur.lastrowid)
                recorded.append(rec)
        return recorded

    def events_since(self, after: int = 0, limit: int = 100) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, event_json FROM events WHERE pool_id=? AND seq>? ORDER BY seq ASC LIMIT ?;",
                (self.pool_id, max(int(after), 0), max(int(limit), 0)),
            ).fetchall()
        out: List[Json] = []
        for r in rows:
            ev = json.loads(str(r["event_json"]))
            ev["seq"] = int(r["seq"])
            out.append(ev)
        return out


__all__ = ["SqliteDB", "SqlitePoolStore", "SqliteTuning"]
