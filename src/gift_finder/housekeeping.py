"""Periodic removal of near-duplicate gifts from the catalog."""

from __future__ import annotations

import logging
import threading
from typing import Any

from gift_finder.db import GiftCatalogDB

_LOGGER = logging.getLogger(__name__)


def levenshtein_distance(left: str, right: str) -> int:
    if len(left) < len(right):
        left, right = right, left
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _names_match(left: str, right: str) -> bool:
    if left == right:
        return True
    if right in left and len(right) > 5:
        return True
    if left in right and len(left) > 5:
        return True
    return levenshtein_distance(left, right) <= 3


def find_duplicate_groups(rows: list[dict[str, Any]]) -> list[list[int]]:
    groups: list[list[int]] = []
    processed: set[int] = set()
    for i, row in enumerate(rows):
        row_id = int(row["id"])
        if row_id in processed:
            continue
        current = str(row["name"]).lower()
        group = [row_id]
        for other in rows[i + 1 :]:
            other_id = int(other["id"])
            if other_id in processed:
                continue
            if _names_match(current, str(other["name"]).lower()):
                group.append(other_id)
                processed.add(other_id)
        if len(group) > 1:
            processed.add(row_id)
            groups.append(sorted(group))
    return groups


def clean_duplicate_gifts(db: GiftCatalogDB) -> int:
    """Delete all but the newest gift of every duplicate group."""
    rows = db.list_gift_names()
    if len(rows) < 2:
        return 0

    names = {int(row["id"]): row["name"] for row in rows}
    deleted = 0
    for group in find_duplicate_groups(rows):
        kept_id = group[-1]
        to_delete = group[:-1]
        deleted += db.delete_gifts(to_delete)
        _LOGGER.info(
            "Deleted duplicates %s, kept %d (%s).",
            ", ".join(f"{gift_id} ({names.get(gift_id, 'unknown')})" for gift_id in to_delete),
            kept_id,
            names.get(kept_id, "unknown"),
        )
    return deleted


class DuplicateCleaner:
    def __init__(self, db: GiftCatalogDB, interval_seconds: float) -> None:
        self.db = db
        self.interval_seconds = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _run(self) -> None:
        while True:
            try:
                clean_duplicate_gifts(self.db)
            except Exception:
                _LOGGER.exception("Duplicate cleanup failed.")
            if self._stop.wait(self.interval_seconds):
                return

    def start(self) -> None:
        if self.interval_seconds <= 0 or self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="duplicate-cleaner", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
