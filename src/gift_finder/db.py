"""SQLite access layer for gifts, tags and users."""

from __future__ import annotations

import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

_GIFT_COLUMNS = """
    g.id, g.name, g.name_en, g.description, g.price_range,
    g.budget_min, g.budget_max, g.image_url, g.ai_generated, g.created_at
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class NewGift:
    name: str
    description: str
    price_range: str
    budget_min: float
    budget_max: float
    name_en: str | None = None
    image_url: str | None = None
    ai_generated: bool = False


class GiftCatalogDB:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS gifts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    name_en TEXT,
                    description TEXT NOT NULL DEFAULT '',
                    price_range TEXT NOT NULL DEFAULT '',
                    budget_min REAL NOT NULL DEFAULT 0,
                    budget_max REAL NOT NULL DEFAULT 0,
                    image_url TEXT,
                    ai_generated INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    CHECK (budget_min <= budget_max)
                );

                CREATE INDEX IF NOT EXISTS idx_gifts_name ON gifts(name);
                CREATE INDEX IF NOT EXISTS idx_gifts_budget ON gifts(budget_min, budget_max);

                CREATE TABLE IF NOT EXISTS tags (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    UNIQUE(name, category)
                );

                CREATE TABLE IF NOT EXISTS gift_tags (
                    gift_id INTEGER NOT NULL,
                    tag_id INTEGER NOT NULL,
                    PRIMARY KEY (gift_id, tag_id),
                    FOREIGN KEY (gift_id) REFERENCES gifts(id) ON DELETE CASCADE,
                    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_gift_tags_tag ON gift_tags(tag_id);

                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )

    @staticmethod
    def _gift_from_row(row: sqlite3.Row) -> dict[str, Any]:
        gift = dict(row)
        gift["ai_generated"] = bool(gift.get("ai_generated"))
        return gift

    def query_by_budget(
        self,
        budget_min: float,
        budget_max: float,
        tag_names: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Gifts whose [budget_min, budget_max] overlaps the requested range."""
        conditions = ["g.budget_max >= ?"]
        params: list[Any] = [float(budget_min)]
        if not math.isinf(budget_max):
            conditions.append("g.budget_min <= ?")
            params.append(float(budget_max))

        names = sorted({str(name).strip().lower() for name in tag_names or [] if str(name).strip()})
        join_sql = ""
        if names:
            join_sql = "JOIN gift_tags gt ON gt.gift_id = g.id JOIN tags t ON t.id = gt.tag_id"
            conditions.append(f"lower(t.name) IN ({', '.join(['?'] * len(names))})")
            params.extend(names)

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT DISTINCT {_GIFT_COLUMNS}
                FROM gifts g
                {join_sql}
                WHERE {' AND '.join(conditions)}
                ORDER BY g.id ASC
                """,
                tuple(params),
            ).fetchall()
        return [self._gift_from_row(row) for row in rows]

    def exists_by_name(self, name: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM gifts WHERE name = ? LIMIT 1", (name,)).fetchone()
        return row is not None

    def _ensure_tag(self, conn: sqlite3.Connection, name: str, category: str) -> int:
        conn.execute(
            "INSERT INTO tags (name, category) VALUES (?, ?) ON CONFLICT(name, category) DO NOTHING",
            (name, category),
        )
        row = conn.execute(
            "SELECT id FROM tags WHERE name = ? AND category = ?",
            (name, category),
        ).fetchone()
        return int(row["id"])

    def insert_gift(self, gift: NewGift, tags: dict[str, list[str]] | None = None) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO gifts (
                    name, name_en, description, price_range, budget_min, budget_max,
                    image_url, ai_generated, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    gift.name,
                    gift.name_en,
                    gift.description,
                    gift.price_range,
                    float(gift.budget_min),
                    float(gift.budget_max),
                    gift.image_url,
                    1 if gift.ai_generated else 0,
                    _utc_now(),
                ),
            )
            gift_id = int(cursor.lastrowid)
            for category, names in (tags or {}).items():
                for name in names:
                    cleaned = str(name).strip().lower()
                    if not cleaned:
                        continue
                    tag_id = self._ensure_tag(conn, cleaned, category)
                    conn.execute(
                        "INSERT OR IGNORE INTO gift_tags (gift_id, tag_id) VALUES (?, ?)",
                        (gift_id, tag_id),
                    )
        return gift_id

    def update_image(self, gift_id: int, image_url: str) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE gifts SET image_url = ? WHERE id = ?", (image_url, gift_id))

    def get_gift(self, gift_id: int) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_GIFT_COLUMNS} FROM gifts g WHERE g.id = ?",
                (gift_id,),
            ).fetchone()
        return self._gift_from_row(row) if row else None

    def get_gift_tags(self, gift_id: int) -> dict[str, list[str]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT t.category, t.name
                FROM gift_tags gt
                JOIN tags t ON t.id = gt.tag_id
                WHERE gt.gift_id = ?
                ORDER BY t.category, t.name
                """,
                (gift_id,),
            ).fetchall()
        out: dict[str, list[str]] = {}
        for row in rows:
            out.setdefault(str(row["category"]), []).append(str(row["name"]))
        return out

    def list_gifts_missing_images(self, limit: int) -> list[dict[str, Any]]:
        safe_limit = max(1, int(limit))
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_GIFT_COLUMNS}
                FROM gifts g
                WHERE g.image_url IS NULL OR trim(g.image_url) = ''
                ORDER BY g.id ASC
                LIMIT ?
                """,
                (safe_limit,),
            ).fetchall()
        return [self._gift_from_row(row) for row in rows]

    def list_gift_names(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name, created_at FROM gifts ORDER BY id ASC").fetchall()
        return [dict(row) for row in rows]

    def delete_gifts(self, gift_ids: list[int]) -> int:
        if not gift_ids:
            return 0
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM gifts WHERE id IN ({', '.join(['?'] * len(gift_ids))})",
                tuple(int(gift_id) for gift_id in gift_ids),
            )
        return int(cursor.rowcount)

    def create_user(self, *, username: str, email: str, password_hash: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (username, email, password_hash, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (username, email, password_hash, _utc_now()),
            )
        return int(cursor.lastrowid)

    def user_exists(self, *, username: str, email: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE username = ? OR email = ? LIMIT 1",
                (username, email),
            ).fetchone()
        return row is not None

    def get_user_by_username(self, username: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, username, email, password_hash, created_at FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        return dict(row) if row else None

    def stats(self) -> dict[str, Any]:
        with self._connect() as conn:
            counts = conn.execute(
                """
                SELECT
                  (SELECT COUNT(*) FROM gifts) AS gift_count,
                  (SELECT COUNT(*) FROM gifts WHERE ai_generated = 1) AS ai_gift_count,
                  (SELECT COUNT(*) FROM tags) AS tag_count,
                  (SELECT COUNT(*) FROM users) AS user_count
                """
            ).fetchone()
        return dict(counts) if counts else {"gift_count": 0, "ai_gift_count": 0, "tag_count": 0, "user_count": 0}
