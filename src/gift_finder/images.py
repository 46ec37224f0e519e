"""Pexels image lookup with caching, query fallbacks and rate-limit backoff."""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any

from gift_finder.errors import ProviderRateLimitError
from gift_finder.transport import request_json

_LOGGER = logging.getLogger(__name__)

DIVERSIFIERS = ("colorful", "beautiful", "modern", "elegant", "creative", "unique", "special")


class PexelsImageProvider:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.pexels.com/v1",
        locale: str = "uk-UA",
        timeout_seconds: float = 15.0,
        rate_limit_retries: int = 3,
        rate_limit_delay_seconds: float = 2.0,
        rng: random.Random | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.locale = locale
        self.timeout_seconds = timeout_seconds
        self.rate_limit_retries = max(0, int(rate_limit_retries))
        self.rate_limit_delay_seconds = max(0.0, float(rate_limit_delay_seconds))
        self._rng = rng or random.Random()
        self._cache: dict[tuple[str, bool], str] = {}
        self._lock = threading.Lock()

    def _search(self, query: str, *, is_english: bool, per_page: int = 1, page: int = 1) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "query": query,
            "per_page": per_page,
            "page": page,
            "orientation": "square",
        }
        if not is_english and self.locale:
            params["locale"] = self.locale

        for attempt in range(self.rate_limit_retries + 1):
            try:
                response = request_json(
                    f"{self.base_url}/search",
                    headers={"Authorization": self.api_key},
                    params=params,
                    timeout_seconds=self.timeout_seconds,
                    max_retries=1,
                )
            except ProviderRateLimitError as exc:
                if attempt >= self.rate_limit_retries:
                    raise
                delay = exc.retry_after if exc.retry_after is not None else self.rate_limit_delay_seconds
                _LOGGER.info("Pexels rate limit hit, retrying %r in %.1fs.", query, delay)
                time.sleep(delay)
                continue
            photos = response.get("photos") if isinstance(response, dict) else None
            return [photo for photo in photos or [] if isinstance(photo, dict)]
        return []

    @staticmethod
    def _photo_url(photo: dict[str, Any]) -> str | None:
        src = photo.get("src")
        if isinstance(src, dict):
            url = src.get("medium") or src.get("original")
            if isinstance(url, str) and url:
                return url
        return None

    def _lookup(self, query: str, is_english: bool) -> str | None:
        photos = self._search(query, is_english=is_english)
        if not photos and " " in query:
            main_keyword = query.split()[0]
            _LOGGER.info("No images for %r, trying %r.", query, main_keyword)
            photos = self._search(main_keyword, is_english=is_english)

        if photos:
            return self._photo_url(photos[0])

        diversifier = self._rng.choice(DIVERSIFIERS)
        page = self._rng.randint(1, 5)
        _LOGGER.info("Diversifying image search for %r with %r.", query, diversifier)
        photos = self._search(f"{diversifier} gift", is_english=True, per_page=15, page=page)
        if not photos:
            return None
        return self._photo_url(self._rng.choice(photos))

    def find_image(self, query: str, is_english: bool = False) -> str | None:
        cleaned = (query or "").strip()
        if not cleaned or not self.api_key:
            return None

        key = (cleaned, bool(is_english))
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            url = self._lookup(cleaned, bool(is_english))
        except Exception as exc:
            _LOGGER.warning("Image lookup failed for %r: %s", cleaned, exc)
            return None

        if url:
            with self._lock:
                self._cache[key] = url
        return url
