"""HTTP surface tests: analyst endpoints, API key guard, health and metrics."""

import pytest
from fastapi.testclient import TestClient

from analyst.etl import api_football
from analyst.main import create_app
from analyst.security import limiter
from analyst.service import build_service

from conftest import AWAY, HOME, FakeGateway, FakeProvider, make_settings

MATCH = {"home_team": HOME, "away_team": AWAY, "league_name": "Premier League"}


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def service():
    return build_service(make_settings(), provider=FakeProvider())


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


class TestAnswerEndpoint:
    def test_fallback_answer(self, client):
        response = client.post("/analyst/answer", json={"question": "who will win?", "match": MATCH})

        assert response.status_code == 200
        body = response.json()
        assert body["skipped"] is False
        assert body["answer"].startswith(f"**Match Prediction: {HOME} vs {AWAY}**")

    def test_model_answer(self, service):
        service.generator.gateway = FakeGateway()
        with TestClient(create_app(service)) as client:
            response = client.post("/analyst/answer", json={
                "question": "thoughts?", "match": MATCH, "room_id": "room-1",
            })
        assert response.json()["answer"] == "Arsenal should edge it 2-1."

    def test_ai_disabled(self, client, service):
        response = client.post("/analyst/answer", json={
            "question": "who will win?", "match": MATCH, "room_id": "room-1", "ai_enabled": False,
        })
        assert response.json() == {"answer": None, "skipped": True}
        assert service.orchestrator.provider.calls == []

    def test_validation(self, client):
        assert client.post("/analyst/answer", json={"question": "", "match": MATCH}).status_code == 422
        assert client.post("/analyst/answer", json={"question": "hi", "match": {"home_team": HOME}}).status_code == 422


class TestPredictEndpoint:
    def test_explicit_inputs(self, client):
        response = client.post("/analyst/predict", json={
            "match": MATCH,
            "inputs": {"home_form": 80, "away_form": 40, "home_rank": 3, "away_rank": 4},
        })

        assert response.status_code == 200
        body = response.json()
        assert (body["home_win"], body["draw"], body["away_win"]) == (55, 21, 24)
        assert body["predicted_score"] == {"home": 3, "away": 1}
        assert body["factors"][0]["type"] == "home_advantage"

    def test_out_of_range_inputs_rejected(self, client):
        response = client.post("/analyst/predict", json={"match": MATCH, "inputs": {"home_form": 140}})
        assert response.status_code == 422

    def test_baseline_fetch(self, client, service):
        response = client.post("/analyst/predict", json={"match": MATCH})
        assert response.status_code == 200
        assert service.orchestrator.provider.called("get_team_form") == 2


class TestInsightsEndpoint:
    def test_insights_after_answer(self, client, service):
        client.post("/analyst/answer", json={"question": "any injury news?", "match": MATCH, "room_id": "r"})
        # Learning runs on the event bus; wait for it before reading
        client.portal.call(service.bus.drain)

        response = client.get("/analyst/insights", params={"home": HOME, "away": AWAY, "limit": 50})
        assert response.status_code == 200
        texts = [i["text"] for i in response.json()]
        assert f"{HOME} injury concerns: Bukayo Saka" in texts

    def test_limit_bounds(self, client):
        assert client.get("/analyst/insights", params={"home": HOME, "away": AWAY, "limit": 0}).status_code == 422


class TestApiKey:
    def test_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr("analyst.security.get_settings", lambda: make_settings(API_KEY="secret"))
        payload = {"question": "thoughts?", "match": MATCH}

        assert client.post("/analyst/answer", json=payload).status_code == 401
        assert client.post("/analyst/answer", json=payload, headers={"X-API-Key": "nope"}).status_code == 403
        assert client.post("/analyst/answer", json=payload, headers={"X-API-Key": "secret"}).status_code == 200

    def test_production_without_key_fails_closed(self, client, monkeypatch):
        monkeypatch.setattr("analyst.security.IS_PRODUCTION", True)
        monkeypatch.setattr("analyst.security.get_settings", lambda: make_settings(API_KEY=""))
        response = client.post("/analyst/answer", json={"question": "thoughts?", "match": MATCH})
        assert response.status_code == 503

    def test_health_is_public(self, client, monkeypatch):
        monkeypatch.setattr("analyst.security.get_settings", lambda: make_settings(API_KEY="secret"))
        assert client.get("/health").status_code == 200


class TestCoreRoutes:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["model_configured"] is False
        assert body["event_bus_running"] is True
        assert body["sentry_enabled"] is False
        assert body["api_budget"]["budget_total"] == 0
        assert body["api_budget"]["budget_remaining"] is None

    def test_health_reports_api_budget(self, monkeypatch):
        monkeypatch.setattr(api_football, "_budget_day", None)
        monkeypatch.setattr(api_football, "_budget_used", 40)
        service = build_service(make_settings(API_DAILY_BUDGET=100), provider=FakeProvider())
        with TestClient(create_app(service)) as client:
            budget = client.get("/health").json()["api_budget"]
        assert (budget["budget_used"], budget["budget_total"], budget["budget_remaining"]) == (40, 100, 60)

    def test_metrics_public_by_default(self, client, monkeypatch):
        monkeypatch.setattr("analyst.routes.core.get_settings", lambda: make_settings())
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "analyst_" in response.text

    def test_metrics_bearer_token(self, client, monkeypatch):
        monkeypatch.setattr("analyst.routes.core.get_settings", lambda: make_settings(METRICS_BEARER_TOKEN="t0k"))
        assert client.get("/metrics").status_code == 401
        assert client.get("/metrics", headers={"Authorization": "Basic t0k"}).status_code == 401
        assert client.get("/metrics", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert client.get("/metrics", headers={"Authorization": "Bearer t0k"}).status_code == 200
