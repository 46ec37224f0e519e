from dataclasses import replace
import json
from types import SimpleNamespace

import pytest

from conftest import (
    GENERATION_PROMPT_MARKER,
    SELECTION_PROMPT_MARKER,
    TAG_PROMPT_MARKER,
    ScriptedCompletionClient,
    add_gift,
)
from gift_finder.errors import DuplicateUserError
from gift_finder.service import GiftFinderService, RecommendationRequest
from gift_finder.status import StatusStore
from gift_finder.tags import RecipientCriteria


def _overlaps(gift, low, high):
    return gift["budget_min"] <= high and gift["budget_max"] >= low


def test_catalog_only_recommendation(db, make_service):
    add_gift(db, "Книга", "$20-$60", tags={"interest": ["reading"]})
    add_gift(db, "Навушники", "$80-$150", tags={"interest": ["music"]})
    add_gift(db, "Годинник", "$300-$500")
    add_gift(db, "Листівка", "$1-$5")
    service = make_service()

    response = service.recommend(
        RecommendationRequest(
            criteria=RecipientCriteria(age=25, gender="female", interests="reading", budget="50-100"),
            use_ai=False,
        )
    )

    assert response["aiStatus"] == "not_started"
    assert "requestId" not in response
    assert len(response["gifts"]) >= 1
    assert all(_overlaps(gift, 50, 100) for gift in response["gifts"])


def test_tag_match_narrows_candidates(db, make_service):
    add_gift(db, "Книга", "$20-$60", tags={"interest": ["reading"]})
    add_gift(db, "Навушники", "$40-$90", tags={"interest": ["music"]})
    service = make_service()

    response = service.recommend(
        RecommendationRequest(criteria=RecipientCriteria(interests="reading", budget="50-100"))
    )

    assert [gift["name"] for gift in response["gifts"]] == ["Книга"]


def test_untagged_match_falls_back_to_budget_candidates(db, make_service):
    add_gift(db, "Книга", "$20-$60")
    add_gift(db, "Навушники", "$40-$90")
    service = make_service()

    response = service.recommend(
        RecommendationRequest(criteria=RecipientCriteria(interests="skydiving", budget="50-100"))
    )

    assert sorted(gift["name"] for gift in response["gifts"]) == ["Книга", "Навушники"]


def test_missing_images_resolved_and_stored(db, make_service, images):
    gift_id = add_gift(db, "Книга", "$20-$60", name_en="Book")
    add_gift(db, "Лампа", "$20-$60", image_url="https://img.test/lamp.jpg")
    service = make_service()

    response = service.recommend(RecommendationRequest(criteria=RecipientCriteria(budget="any")))

    gifts = {gift["name"]: gift for gift in response["gifts"]}
    assert gifts["Книга"]["image_url"] == "https://images.test/Book.jpg"
    assert db.get_gift(gift_id)["image_url"] == "https://images.test/Book.jpg"
    assert images.calls == [("Book", True)]


def test_image_failures_do_not_abort_response(db, make_service):
    class BrokenImages:
        def find_image(self, query, is_english=False):
            raise RuntimeError("pexels down")

    add_gift(db, "Книга", "$20-$60")
    service = make_service(images=BrokenImages())

    response = service.recommend(RecommendationRequest(criteria=RecipientCriteria()))

    assert response["gifts"][0]["image_url"] is None


def test_large_catalog_narrowed_to_display_limit(db, make_service):
    ids = [add_gift(db, f"Подарунок {index}", "$10-$50") for index in range(12)]
    client = ScriptedCompletionClient(
        {
            TAG_PROMPT_MARKER: "not json",
            SELECTION_PROMPT_MARKER: json.dumps(ids[:8]),
        }
    )
    service = make_service(client)

    response = service.recommend(RecommendationRequest(criteria=RecipientCriteria(budget="0-100")))

    assert sorted(gift["id"] for gift in response["gifts"]) == sorted(ids[:8])


def test_ai_generation_on_empty_catalog(make_service):
    ideas = json.dumps(
        [
            {"name": "Плед", "description": "Теплий", "price_range": "$30-$50"},
            {"name": "Чашка", "description": "Велика", "price_range": "$10-$20"},
        ]
    )
    client = ScriptedCompletionClient({TAG_PROMPT_MARKER: "nope", GENERATION_PROMPT_MARKER: ideas})
    service = make_service(client)

    response = service.recommend(
        RecommendationRequest(criteria=RecipientCriteria(budget="any"), use_ai=True, ai_gift_count=2)
    )

    assert response["gifts"] == []
    assert response["aiStatus"] == "generating"
    request_id = response["requestId"]
    assert request_id

    assert service.wait_for_background_jobs(timeout=5)
    final = service.poll_status(request_id)
    assert final["status"] == "completed"
    assert len(final["gifts"]) <= 2
    assert service.poll_status(request_id) == {"status": "pending"}


class TotalsStore(StatusStore):
    def __init__(self):
        super().__init__()
        self.totals = []

    def start(self, key, total):
        self.totals.append(total)
        super().start(key, total)


def test_ai_count_is_clamped(make_service, settings):
    client = ScriptedCompletionClient({TAG_PROMPT_MARKER: "nope", GENERATION_PROMPT_MARKER: "[]"})
    store = TotalsStore()
    service = make_service(client, status=store)

    high = service.recommend(RecommendationRequest(use_ai=True, ai_gift_count=500))
    service.recommend(RecommendationRequest(use_ai=True, ai_gift_count=0))
    service.recommend(RecommendationRequest(use_ai=True))

    assert store.totals == [settings.max_ai_gift_count, 1, settings.default_ai_gift_count]
    assert service.wait_for_background_jobs(timeout=5)
    assert service.poll_status(high["requestId"])["status"] == "error"


def test_request_ids_are_unique(make_service):
    client = ScriptedCompletionClient({TAG_PROMPT_MARKER: "nope", GENERATION_PROMPT_MARKER: "[]"})
    service = make_service(client)
    ids = {service.recommend(RecommendationRequest(use_ai=True))["requestId"] for _ in range(5)}
    assert len(ids) == 5


def test_escaped_job_exception_recorded_as_error(make_service):
    client = ScriptedCompletionClient({TAG_PROMPT_MARKER: "nope"})
    service = make_service(client)

    def exploding_run(*args, **kwargs):
        raise RuntimeError("worker died")

    service.generator.run = exploding_run

    response = service.recommend(RecommendationRequest(use_ai=True))
    assert service.wait_for_background_jobs(timeout=5)
    assert service.poll_status(response["requestId"]) == {"status": "error", "error": "AI generation failed."}


def test_catalog_failure_raises_generic_error(db, make_service):
    service = make_service()

    def broken_query(*args, **kwargs):
        raise RuntimeError("database is locked")

    db.query_by_budget = broken_query

    with pytest.raises(RuntimeError, match="Unable to build gift recommendations"):
        service.recommend(RecommendationRequest(criteria=RecipientCriteria()))


def test_launch_failure_marks_status_error(make_service, monkeypatch):
    service = make_service()
    monkeypatch.setattr("gift_finder.service.uuid.uuid4", lambda: SimpleNamespace(hex="fixed-id"))

    def broken_launch(**kwargs):
        raise RuntimeError("pool shut down")

    service._launch_generation = broken_launch

    with pytest.raises(RuntimeError):
        service.recommend(RecommendationRequest(use_ai=True))
    assert service.poll_status("fixed-id") == {"status": "error", "error": "Gift recommendation failed."}


def test_refresh_images_backfills_catalog(db, make_service):
    add_gift(db, "Книга", "$20-$60")
    add_gift(db, "Лампа", "$20-$60", image_url="https://img.test/lamp.jpg")
    service = make_service()

    result = service.refresh_images(limit=10)

    assert result["checked"] == 1
    assert result["updated"] == 1
    assert db.list_gifts_missing_images(10) == []


def test_register_and_login(make_service):
    service = make_service()
    assert service.register(username="olena", email="Olena@example.com", password="secret")["message"]

    with pytest.raises(DuplicateUserError):
        service.register(username="olena2", email="olena@example.com", password="x")

    result = service.login(username="olena", password="secret")
    assert result["user"]["username"] == "olena"
    assert service.authenticate(result["token"])["username"] == "olena"

    with pytest.raises(PermissionError):
        service.login(username="olena", password="wrong")
    with pytest.raises(PermissionError):
        service.login(username="nobody", password="secret")


def test_dedupe_removes_older_duplicates(db, make_service):
    older = add_gift(db, "Настільна гра", "$20-$40")
    newer = add_gift(db, "Настільна гра", "$20-$40")
    service = make_service()

    assert service.dedupe() == {"deleted": 1}
    assert db.get_gift(older) is None
    assert db.get_gift(newer) is not None


def test_unknown_provider_degrades_to_rules(settings):
    service = GiftFinderService.from_settings(replace(settings, completion_provider="bogus"))
    try:
        assert service.ai_enabled is False
        assert service.translator.client is None
    finally:
        service.shutdown()
