"""Best-effort translation of gift names to English."""

from __future__ import annotations

import logging
import threading
import time

from gift_finder.errors import ProviderRateLimitError
from gift_finder.llm_utils import CompletionClient

_LOGGER = logging.getLogger(__name__)


class Translator:
    def __init__(
        self,
        client: CompletionClient | None,
        *,
        rate_limit_retries: int = 3,
        rate_limit_delay_seconds: float = 2.0,
    ) -> None:
        self.client = client
        self.rate_limit_retries = max(0, int(rate_limit_retries))
        self.rate_limit_delay_seconds = max(0.0, float(rate_limit_delay_seconds))
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _prompt(text: str) -> str:
        return (
            "You are a concise ecommerce translator.\n"
            "Translate the gift name to English.\n"
            "Rules:\n"
            "- Keep brand names unchanged.\n"
            "- Return plain text only, no quotes, no explanations.\n"
            f"Text: {text}"
        )

    def translate(self, text: str) -> str | None:
        cleaned = (text or "").strip()
        if not cleaned:
            return None
        if cleaned.isascii():
            return cleaned

        with self._lock:
            cached = self._cache.get(cleaned)
        if cached is not None:
            return cached
        if self.client is None:
            return None

        for attempt in range(self.rate_limit_retries + 1):
            try:
                translated = self.client.complete(self._prompt(cleaned), temperature=0.1, max_tokens=60)
            except ProviderRateLimitError as exc:
                if attempt >= self.rate_limit_retries:
                    _LOGGER.warning("Translation rate limited, giving up on %r.", cleaned)
                    return None
                delay = exc.retry_after if exc.retry_after is not None else self.rate_limit_delay_seconds
                time.sleep(delay)
                continue
            except Exception as exc:
                _LOGGER.warning("Translation failed for %r: %s", cleaned, exc)
                return None

            result = translated.strip().strip('"').strip()
            if not result:
                return None
            with self._lock:
                self._cache[cleaned] = result
            return result
        return None
