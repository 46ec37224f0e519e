"""In-memory registry of background generation progress, keyed by request id."""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Callable

_LOGGER = logging.getLogger(__name__)

GENERATING = "generating"
COMPLETED = "completed"
ERROR = "error"
PENDING = "pending"

TERMINAL_STATES = {COMPLETED, ERROR}


class StatusStore:
    """Progress table for AI generation jobs.

    The orchestrator creates an entry, the job that owns the key is its only
    writer afterwards, and the first terminal read through ``poll`` removes
    it. Entries nobody touched for ``ttl_seconds`` are dropped by ``sweep``.
    """

    def __init__(self, ttl_seconds: float = 900.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = max(1.0, float(ttl_seconds))
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._touched: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _touch(self, key: str) -> None:
        self._touched[key] = self._clock()

    def start(self, key: str, total: int) -> None:
        self.sweep()
        with self._lock:
            self._entries[key] = {"status": GENERATING, "gifts": [], "total": int(total), "completed": 0}
            self._touch(key)

    def append_gift(self, key: str, gift: dict[str, Any]) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry["status"] != GENERATING:
                return
            entry["gifts"].append(dict(gift))
            entry["completed"] += 1
            self._touch(key)

    def complete(self, key: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            self._entries[key] = {"status": COMPLETED, "gifts": list(entry.get("gifts", []))}
            self._touch(key)

    def fail(self, key: str, message: str) -> None:
        with self._lock:
            if key not in self._entries:
                return
            self._entries[key] = {"status": ERROR, "error": message}
            self._touch(key)

    def snapshot(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            return copy.deepcopy(entry) if entry is not None else None

    def poll(self, key: str) -> dict[str, Any]:
        self.sweep()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return {"status": PENDING}
            payload = copy.deepcopy(entry)
            if entry["status"] in TERMINAL_STATES:
                del self._entries[key]
                self._touched.pop(key, None)
        return payload

    def sweep(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [key for key, touched in self._touched.items() if touched < cutoff]
            for key in expired:
                self._entries.pop(key, None)
                self._touched.pop(key, None)
        if expired:
            _LOGGER.info("Evicted %d abandoned status entries.", len(expired))
        return len(expired)
