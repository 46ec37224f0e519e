"""FastAPI entrypoint for the gift finder API."""

from __future__ import annotations

import logging
from pathlib import Path

import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv

from gift_finder.api import create_app
from gift_finder.config import Settings
from gift_finder.service import GiftFinderService

load_dotenv()

settings = Settings.from_env(root_dir=ROOT_DIR)
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

service = GiftFinderService.from_settings(settings)
app = create_app(service)
