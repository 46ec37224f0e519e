#!/usr/bin/env python3
"""Loads the starter gift catalog into the SQLite database."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv
from gift_finder.budget import parse_price_range
from gift_finder.config import Settings
from gift_finder.db import GiftCatalogDB, NewGift


def seed(db: GiftCatalogDB, entries: list[dict]) -> tuple[int, int]:
    inserted = 0
    skipped = 0
    for entry in entries:
        name = str(entry.get("name") or "").strip()
        if not name or db.exists_by_name(name):
            skipped += 1
            continue
        price_range = str(entry.get("price_range") or "")
        budget_min, budget_max = parse_price_range(price_range)
        db.insert_gift(
            NewGift(
                name=name,
                name_en=entry.get("name_en"),
                description=str(entry.get("description") or ""),
                price_range=price_range,
                budget_min=budget_min,
                budget_max=budget_max,
                image_url=entry.get("image_url"),
            ),
            tags=entry.get("tags") or {},
        )
        inserted += 1
    return inserted, skipped


def main() -> None:
    load_dotenv()
    settings = Settings.from_env(root_dir=ROOT_DIR)

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db", type=Path, default=settings.db_path, help="SQLite database path")
    parser.add_argument(
        "--file",
        type=Path,
        default=ROOT_DIR / "data" / "seed_gifts.json",
        help="JSON list of gifts with tags",
    )
    args = parser.parse_args()

    entries = json.loads(args.file.read_text(encoding="utf-8"))
    if not isinstance(entries, list):
        raise SystemExit(f"{args.file} must contain a JSON list.")

    inserted, skipped = seed(GiftCatalogDB(args.db), entries)
    print(f"Inserted {inserted} gifts, skipped {skipped} into {args.db}.")


if __name__ == "__main__":
    main()
