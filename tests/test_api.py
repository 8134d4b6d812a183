import pytest
from fastapi.testclient import TestClient

from conftest import FailingReasoning, FakeReasoning, build_contact, build_product
from match_engine.api import endpoints
from match_engine.engine import ProductMatchingEngine
from match_engine.models.schemas import SemanticAnalysis
from match_engine.store.match_store import InMemoryMatchStore


@pytest.fixture
def engine(monkeypatch):
    engine = ProductMatchingEngine(store=InMemoryMatchStore(), reasoning=FailingReasoning())
    monkeypatch.setattr(endpoints, "default_engine", engine)
    return engine


@pytest.fixture
def client(engine):
    return TestClient(endpoints.app)


def _payload(**contact_overrides):
    return {
        "product": build_product().model_dump(mode="json"),
        "contact": build_contact(**contact_overrides).model_dump(mode="json"),
    }


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["llm_configured"] is True


def test_score_does_not_save(client, engine):
    response = client.post("/api/match/score", json=_payload())

    assert response.status_code == 200
    assert response.json()["match_score"] == 100
    assert len(engine.store) == 0


def test_save_then_fetch(client):
    response = client.post("/api/match", json={**_payload(), "user_id": "u-9"})

    assert response.status_code == 200
    body = response.json()
    assert body["tier"] == "high"
    assert body["tier_label"] == "High Fit"
    assert body["ai_enhanced"] is False
    assert body["match"]["user_id"] == "u-9"

    fetched = client.get("/api/match/prod-1/contact-1")
    assert fetched.status_code == 200
    assert fetched.json()["match_score"] == 100


def test_save_with_ai(client, engine):
    engine.stage3 = FakeReasoning(SemanticAnalysis(semantic_score=40))

    response = client.post(
        "/api/match", json={**_payload(), "use_ai": True, "reasoning_effort": "medium"}
    )

    assert response.json()["match"]["match_score"] == 70
    assert response.json()["ai_enhanced"] is True


def test_save_with_ai_falls_back(client):
    response = client.post("/api/match", json={**_payload(), "use_ai": True})

    assert response.status_code == 200
    assert response.json()["match"]["match_score"] == 100
    assert response.json()["ai_enhanced"] is False


def test_missing_match_is_404(client):
    assert client.get("/api/match/prod-1/nobody").status_code == 404


def test_batch_and_list(client):
    contacts = [
        build_contact(id="c-hot").model_dump(mode="json"),
        build_contact(id="c-cold", industry="Retail", status="closed-lost").model_dump(mode="json"),
        build_contact(id="c-mid", tags=[], status=None).model_dump(mode="json"),
    ]
    response = client.post(
        "/api/match/batch",
        json={
            "product": build_product().model_dump(mode="json"),
            "contacts": contacts,
            "chunk_size": 2,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_processed"] == 3
    assert body["saved"] == 3
    assert body["chunks"] == 2
    assert body["failed_chunks"] == 0

    listed = client.get("/api/match/prod-1", params={"min_score": 80}).json()
    assert [m["contact_id"] for m in listed["matches"]] == ["c-hot", "c-mid"]

    deleted = client.delete("/api/match/product/prod-1").json()
    assert deleted["removed"] == 3


def test_batch_rejects_zero_chunk_size(client):
    response = client.post(
        "/api/match/batch",
        json={
            "product": build_product().model_dump(mode="json"),
            "contacts": [],
            "chunk_size": 0,
        },
    )

    assert response.status_code == 422


def test_weights_roundtrip(client):
    assert client.get("/api/weights").json()["total"] == 100

    response = client.post(
        "/api/weights",
        json={"industry": 40, "company_size": 10, "title": 25, "tags": 15, "status": 10},
    )

    assert response.status_code == 200
    assert client.get("/api/weights").json()["industry"] == 40


def test_negative_weight_rejected(client):
    response = client.post("/api/weights", json={"industry": -1})

    assert response.status_code == 422


def test_stats(client):
    client.post("/api/match/score", json=_payload())

    stats = client.get("/api/stats").json()["default_engine"]

    assert stats["total_calculated"] == 1


def test_enrich_saved_match(client, engine):
    engine.stage3 = FakeReasoning()
    client.post("/api/match", json=_payload())

    response = client.post("/api/match/enrich", json=_payload())

    assert response.status_code == 200
    body = response.json()
    assert body["enrichment_types"] == ["company_news"]
    news = body["match"]["ai_enrichment_data"]["company_news"]
    assert news["sources"][0]["domain"] == "acme.com"


def test_enrich_unsaved_match_is_404(client):
    assert client.post("/api/match/enrich", json=_payload()).status_code == 404


def test_enrich_failure_is_503(client):
    client.post("/api/match", json=_payload())

    assert client.post("/api/match/enrich", json=_payload()).status_code == 503
