"""Shared fixtures and in-memory provider fakes."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from gift_finder.budget import parse_price_range
from gift_finder.config import Settings
from gift_finder.db import GiftCatalogDB, NewGift
from gift_finder.service import GiftFinderService

TAG_PROMPT_MARKER = "classify gift recipients"
SELECTION_PROMPT_MARKER = "gift selection expert"
GENERATION_PROMPT_MARKER = "suggests original gift ideas"


class ScriptedCompletionClient:
    """Answers prompts by marker substring; a reply may be text, an exception or a callable."""

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies = dict(replies or {})
        self.calls: list[dict[str, Any]] = []

    def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 512) -> str:
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        for marker, reply in self.replies.items():
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    return reply(prompt)
                return reply
        raise RuntimeError("No scripted reply for prompt.")

    def calls_for(self, marker: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if marker in call["prompt"]]


class FakeTranslator:
    def __init__(self, mapping: dict[str, str] | None = None) -> None:
        self.mapping = dict(mapping or {})
        self.calls: list[str] = []

    def translate(self, text: str) -> str | None:
        self.calls.append(text)
        return self.mapping.get(text)


class FakeImages:
    def __init__(self, url_for: Callable[[str], str | None] | None = None) -> None:
        self.url_for = url_for or (lambda query: f"https://images.test/{query.replace(' ', '-')}.jpg")
        self.calls: list[tuple[str, bool]] = []

    def find_image(self, query: str, is_english: bool = False) -> str | None:
        self.calls.append((query, is_english))
        return self.url_for(query)


def add_gift(
    db: GiftCatalogDB,
    name: str,
    price_range: str,
    *,
    tags: dict[str, list[str]] | None = None,
    image_url: str | None = None,
    name_en: str | None = None,
) -> int:
    budget_min, budget_max = parse_price_range(price_range)
    return db.insert_gift(
        NewGift(
            name=name,
            name_en=name_en,
            description=f"{name} description",
            price_range=price_range,
            budget_min=budget_min,
            budget_max=budget_max,
            image_url=image_url,
        ),
        tags=tags,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        db_path=tmp_path / "gifts.db",
        jwt_secret="test-secret",
        dedupe_interval_seconds=0,
        generator_workers=1,
        rate_limit_delay_seconds=0.01,
    )


@pytest.fixture
def db(settings) -> GiftCatalogDB:
    return GiftCatalogDB(settings.db_path)


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def images() -> FakeImages:
    return FakeImages()


@pytest.fixture
def make_service(settings, db, translator, images):
    created: list[GiftFinderService] = []

    def _make(client=None, **overrides) -> GiftFinderService:
        service = GiftFinderService(
            settings=overrides.pop("settings", settings),
            db=db,
            completion_client=client,
            translator=overrides.pop("translator", translator),
            images=overrides.pop("images", images),
            **overrides,
        )
        created.append(service)
        return service

    yield _make
    for service in created:
        service.shutdown(wait_for_jobs=True)
