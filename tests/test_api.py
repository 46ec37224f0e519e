import json

import pytest
from fastapi.testclient import TestClient

from conftest import GENERATION_PROMPT_MARKER, TAG_PROMPT_MARKER, ScriptedCompletionClient, add_gift
from gift_finder.api import RecommendRequest, create_app


@pytest.fixture
def client_for(make_service):
    def _build(completion_client=None):
        service = make_service(completion_client)
        return service, TestClient(create_app(service))

    return _build


def _login(http: TestClient) -> dict:
    http.post("/api/register", json={"username": "olena", "email": "olena@example.com", "password": "pw"})
    token = http.post("/api/login", json={"username": "olena", "password": "pw"}).json()["token"]
    return {"Authorization": f"Bearer {token}"}


def test_health_is_public(client_for):
    _service, http = client_for()
    response = http.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["stats"]["ai_enabled"] is False


def test_register_conflict_and_bad_login(client_for):
    _service, http = client_for()
    payload = {"username": "olena", "email": "olena@example.com", "password": "pw"}

    assert http.post("/api/register", json=payload).status_code == 201
    assert http.post("/api/register", json=payload).status_code == 409
    assert http.post("/api/login", json={"username": "olena", "password": "nope"}).status_code == 401


def test_recommend_requires_token(client_for):
    _service, http = client_for()
    assert http.post("/api/gifts/recommend", json={}).status_code == 401
    response = http.post(
        "/api/gifts/recommend",
        json={},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 403


def test_recommend_catalog_only(db, client_for):
    add_gift(db, "Книга", "$20-$60")
    _service, http = client_for()
    headers = _login(http)

    response = http.post("/api/gifts/recommend", json={"budget": "50-100", "gender": ""}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["aiStatus"] == "not_started"
    assert [gift["name"] for gift in body["gifts"]] == ["Книга"]


def test_recommend_then_poll_status(client_for):
    ideas = json.dumps([{"name": "Плед", "description": "Теплий", "price_range": "$30-$50"}])
    scripted = ScriptedCompletionClient({TAG_PROMPT_MARKER: "nope", GENERATION_PROMPT_MARKER: ideas})
    service, http = client_for(scripted)
    headers = _login(http)

    body = http.post(
        "/api/gifts/recommend",
        json={"budget": "any", "useAi": True, "aiGiftCount": 1},
        headers=headers,
    ).json()
    assert body["aiStatus"] == "generating"
    assert service.wait_for_background_jobs(timeout=5)

    url = f"/api/gifts/recommend/status/{body['requestId']}"
    final = http.get(url, headers=headers).json()
    assert final["status"] == "completed"
    assert [gift["name"] for gift in final["gifts"]] == ["Плед"]
    assert http.get(url, headers=headers).json() == {"status": "pending"}


def test_recommend_internal_error_is_500(db, client_for):
    service, http = client_for()
    headers = _login(http)

    def broken_query(*args, **kwargs):
        raise RuntimeError("database is locked")

    service.db.query_by_budget = broken_query

    response = http.post("/api/gifts/recommend", json={}, headers=headers)
    assert response.status_code == 500
    assert response.json() == {"detail": "Server error"}


def test_request_model_normalizes_fields():
    model = RecommendRequest.model_validate(
        {"age": "", "gender": "Other", "occasion": "  ", "budget": "", "useAi": True, "aiGiftCount": 4}
    )
    request = model.to_request()

    assert request.criteria.age is None
    assert request.criteria.gender == "unspecified"
    assert request.criteria.occasion == "any"
    assert request.criteria.budget == "any"
    assert request.use_ai is True
    assert request.ai_gift_count == 4


def test_lifespan_starts_and_stops_service(make_service, monkeypatch):
    service = make_service()
    events = []
    monkeypatch.setattr(service, "start", lambda: events.append("start"))
    monkeypatch.setattr(service, "shutdown", lambda wait_for_jobs=True: events.append("shutdown"))

    with TestClient(create_app(service)) as http:
        assert http.get("/api/health").status_code == 200
        assert events == ["start"]

    assert events == ["start", "shutdown"]
