"""Background job that invents new gifts with the completion model and stores them."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from gift_finder.budget import budget_prompt_label, parse_price_range
from gift_finder.db import GiftCatalogDB, NewGift
from gift_finder.llm_utils import CompletionClient, extract_gift_ideas
from gift_finder.status import StatusStore
from gift_finder.tags import RecipientCriteria, TagSet

_LOGGER = logging.getLogger(__name__)

_MAX_EXISTING_NAMES_IN_PROMPT = 60


class TranslationProvider(Protocol):
    def translate(self, text: str) -> str | None: ...


class ImageProvider(Protocol):
    def find_image(self, query: str, is_english: bool = False) -> str | None: ...


def public_gift(row: dict[str, Any], *, ai_suggested: bool = False) -> dict[str, Any]:
    gift = {
        "id": int(row["id"]),
        "name": row["name"],
        "name_en": row.get("name_en"),
        "description": row.get("description") or "",
        "price_range": row.get("price_range") or "",
        "budget_min": float(row.get("budget_min") or 0.0),
        "budget_max": float(row.get("budget_max") or 0.0),
        "image_url": row.get("image_url"),
        "ai_generated": bool(row.get("ai_generated")),
    }
    if ai_suggested:
        gift["ai_suggested"] = True
    return gift


class AiGiftGenerator:
    def __init__(
        self,
        *,
        db: GiftCatalogDB,
        client: CompletionClient | None,
        translator: TranslationProvider,
        images: ImageProvider,
        status: StatusStore,
        catalog_language: str = "Ukrainian",
    ) -> None:
        self.db = db
        self.client = client
        self.translator = translator
        self.images = images
        self.status = status
        self.catalog_language = catalog_language

    def _prompt(self, criteria: RecipientCriteria, existing_names: list[str], count: int) -> str:
        avoid = ", ".join(existing_names[:_MAX_EXISTING_NAMES_IN_PROMPT]) or "none"
        return (
            f"You are a gift expert who suggests original gift ideas in {self.catalog_language}.\n"
            f"Suggest {count} specific gifts that are not in the list of already suggested gifts.\n"
            f"Recipient: {criteria.describe()}\n"
            f"Budget: {budget_prompt_label(criteria.budget)}\n"
            f"Already suggested (suggest something different): {avoid}\n"
            "Answer ONLY with a JSON array where each item is\n"
            '{"name": "Gift name", "description": "Why this gift fits the person", '
            '"price_range": "$X-$Y"}\n'
            "The price range must fit the budget. No text outside the JSON array."
        )

    def request_ideas(self, criteria: RecipientCriteria, existing_names: list[str], count: int) -> list[dict[str, str]]:
        if self.client is None:
            raise RuntimeError("No completion provider is configured.")
        raw = self.client.complete(self._prompt(criteria, existing_names, count), temperature=0.7, max_tokens=2000)
        ideas: list[dict[str, str]] = []
        for item in extract_gift_ideas(raw):
            name = str(item.get("name") or "").strip()
            if not name:
                continue
            ideas.append(
                {
                    "name": name,
                    "description": str(item.get("description") or "").strip(),
                    "price_range": str(item.get("price_range") or "").strip(),
                }
            )
        if not ideas:
            raise ValueError("Model response contained no usable gift ideas.")
        return ideas[:count]

    def _persist_idea(self, idea: dict[str, str], tags: TagSet | None) -> dict[str, Any] | None:
        name = idea["name"]
        if self.db.exists_by_name(name):
            _LOGGER.info("Skipping generated gift %r: already in catalog.", name)
            return None

        name_en = self.translator.translate(name)
        image_url = self.images.find_image(name_en or name, bool(name_en))
        budget_min, budget_max = parse_price_range(idea["price_range"])

        gift_id = self.db.insert_gift(
            NewGift(
                name=name,
                name_en=name_en,
                description=idea["description"],
                price_range=idea["price_range"],
                budget_min=budget_min,
                budget_max=budget_max,
                image_url=image_url,
                ai_generated=True,
            ),
            tags=tags.by_category() if tags is not None else None,
        )
        row = self.db.get_gift(gift_id)
        return public_gift(row, ai_suggested=True) if row else None

    def run(
        self,
        criteria: RecipientCriteria,
        existing_names: list[str],
        count: int,
        status_key: str,
        tags: TagSet | None = None,
    ) -> None:
        """Generate, store and publish ``count`` new gifts under ``status_key``.

        Ideas are handled one at a time and each stored gift is published
        before the next one starts. A failing idea is skipped; a failing idea
        request ends the job in the ``error`` state.
        """
        try:
            try:
                ideas = self.request_ideas(criteria, existing_names, count)
            except Exception as exc:
                _LOGGER.warning("AI gift generation failed for %s: %s", status_key, exc)
                self.status.fail(status_key, "Failed to generate gift ideas.")
                return

            _LOGGER.info("Generated %d gift ideas for %s.", len(ideas), status_key)
            for idea in ideas:
                try:
                    gift = self._persist_idea(idea, tags)
                except Exception:
                    _LOGGER.exception("Failed to store generated gift %r.", idea.get("name"))
                    continue
                if gift is not None:
                    self.status.append_gift(status_key, gift)

            self.status.complete(status_key)
            _LOGGER.info("AI gift generation finished for %s.", status_key)
        except Exception as exc:
            _LOGGER.exception("AI gift generation crashed for %s.", status_key)
            self.status.fail(status_key, f"AI generation failed: {exc}")
