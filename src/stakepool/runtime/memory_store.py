# src/stakepool/runtime/memory_store.py
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

Json = Dict[str, Any]


class MemoryPoolStore:
    """In-process pool store with an append-only event list.

    Same surface as SqlitePoolStore; used for embedding and tests.
    """

    def __init__(self, *, pool_id: str) -> None:
        self.pool_id = str(pool_id)
        self._state: Optional[Json] = None
        self._events: List[Json] = []

    def exists(self) -> bool:
        return self._state is not None

    def read(self) -> Json:
        if self._state is None:
            raise FileNotFoundError(f"pool {self.pool_id!r} has no state")
        return copy.deepcopy(self._state)

    def commit(self, st: Json, events: List[Json]) -> List[Json]:
        if not isinstance(st, dict):
            raise ValueError("pool commit expects dict")
        recorded: List[Json] = []
        for ev in events:
            rec = dict(ev)
            rec["seq"] = len(self._events) + 1
            self._events.append(rec)
            recorded.append(copy.deepcopy(rec))
        self._state = copy.deepcopy(st)
        return recorded

    def events_since(self, after: int = 0, limit: int = 100) -> List[Json]:
        a = max(int(after), 0)
        n = max(int(limit), 0)
        return [copy.deepcopy(e) for e in self._events[a : a + n]]


__all__ = ["MemoryPoolStore"]
