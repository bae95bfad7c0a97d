from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.ensemble import EnsembleMerger
from app.generation import GeneratorInput
from app.llm_runtime import LlmRuntimeError
from app.main import app

GENERATOR_INPUT = {
    "productConcept": "Lockable tablet stand",
    "targetMarket": "Retail checkout counters",
    "researchFindings": [{"title": "Stand Co", "url": "https://stand.example.com"}],
    "requestId": "req-api",
}


class FakeLlmRuntime:
    def generate_document(self, request: GeneratorInput, variant: int) -> str:
        raise LlmRuntimeError("Bedrock invocation failed for model 'amazon.nova-pro-v1:0': throttled")

    def extract_field(self, field_type, free_text, *, focus, entity_types):
        return {
            "bulletPoints": ["Wall mounted in the lobby"],
            "entities": [{"type": "mounting", "value": "wall", "confidence": 0.9}],
        }


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def bedrock_backends(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "generation_backend", "bedrock")
    monkeypatch.setattr(settings, "extraction_backend", "bedrock")
    monkeypatch.setattr("app.main.get_llm_runtime", lambda: FakeLlmRuntime())


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ready_endpoint(client: TestClient) -> None:
    response = client.get("/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"]["llm"] == {"ok": True, "backend": "none"}


def test_ready_endpoint_reports_bad_configuration(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ensemble_default_strategy", "majority")

    response = client.get("/ready")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "not_ready"
    assert "unsupported merge strategy 'majority'" in body["checks"]["config"]["error"]


def test_quality_review_endpoint(client: TestClient) -> None:
    content = "# MRD\n\n## 1. Purpose & Vision\n\n* A secure stand for checkout tablets\n\n---"
    response = client.post("/quality/review", json={"mrdContent": content, "sources": []})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["passed"] is False
    assert body["dimensions"]["completeness"] == 8
    assert body["criticalIssues"][0].startswith("Missing 11 required section(s)")


def test_quality_review_validation_errors(client: TestClient) -> None:
    response = client.post("/quality/review", json={"sources": []})

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "message": "Validation failed",
        "errors": ["mrdContent must be a non-empty string"],
    }

    response = client.post("/quality/review")
    assert response.status_code == 400
    assert response.json()["detail"]["errors"] == ["Input must be a non-null object"]


def test_ensemble_merge_single_candidate_passes_through(client: TestClient) -> None:
    candidate = {
        "id": "only",
        "sections": {"1": "## 1. Purpose & Vision\n\nA", "2": "## 2. Problem Statement\n\nB"},
        "confidence": {"1": 80, "2": 40},
        "overallScore": 60,
        "source": "api",
    }

    response = client.post(
        "/ensemble/merge",
        json={"candidates": [candidate], "options": {"strategy": "quality-weighted", "minConfidence": 90}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sections"] == candidate["sections"]
    assert body["winners"] == {"1": "only", "2": "only"}
    assert body["overallConfidence"] == 60
    assert body["strategy"] == "quality-weighted"


def test_ensemble_merge_rejects_empty_candidates(client: TestClient) -> None:
    response = client.post("/ensemble/merge", json={"candidates": []})

    assert response.status_code == 400
    assert response.json()["detail"]["errors"] == ["candidates must be a non-empty array"]


def test_ensemble_merge_processing_failure_returns_500(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_merge(self, candidates, options):
        raise RuntimeError("merge exploded")

    monkeypatch.setattr(EnsembleMerger, "merge", broken_merge)
    candidate = {"id": "a", "sections": {"1": "A"}, "confidence": {"1": 70}, "overallScore": 70, "source": "api"}

    response = client.post("/ensemble/merge", json={"candidates": [candidate]})

    assert response.status_code == 500
    assert response.json()["detail"] == {"message": "Processing failed", "errors": ["merge exploded"]}


def test_ensemble_review_endpoint(client: TestClient) -> None:
    response = client.post(
        "/ensemble/review",
        json={
            "generatorInput": GENERATOR_INPUT,
            "numGenerations": 2,
            "mergeStrategy": "confidence-weighted",
            "enableQualityReview": False,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["candidatesGenerated"] == 2
    assert body["candidatesPassed"] == 2
    assert sorted(int(key) for key in body["sections"]) == list(range(1, 13))
    assert body["mergeResult"]["strategy"] == "confidence-weighted"
    assert body["markdown"].startswith("# Market Requirements Document (MRD)")


def test_ensemble_review_validation(client: TestClient) -> None:
    response = client.post(
        "/ensemble/review",
        json={"generatorInput": GENERATOR_INPUT, "numGenerations": 0, "mergeStrategy": "section-voting"},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["errors"] == ["numGenerations must be between 1 and 10"]


def test_ensemble_review_falls_back_to_template(client: TestClient, bedrock_backends: None) -> None:
    response = client.post(
        "/ensemble/review",
        json={
            "generatorInput": GENERATOR_INPUT,
            "numGenerations": 2,
            "mergeStrategy": "section-voting",
            "enableQualityReview": False,
        },
    )

    assert response.status_code == 200
    assert "2 of 2 candidates used the template fallback" in response.json()["warnings"]


def test_brief_gaps_endpoint(client: TestClient) -> None:
    response = client.post(
        "/brief/gaps",
        json={"fieldType": "moq", "entities": [], "bulletPoints": ["Minimum order quantity: 500 units"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert [gap["id"] for gap in body["gaps"]] == ["moq-volume_tiers"]
    assert body["fieldType"] == "moq"
    assert "productType" not in body


def test_brief_gaps_validation(client: TestClient) -> None:
    response = client.post("/brief/gaps", json={"fieldType": "price", "entities": [], "bulletPoints": []})

    assert response.status_code == 400
    assert response.json()["detail"]["errors"] == [
        "fieldType must be one of: what, who, where, moq, must-have, nice-to-have"
    ]


def test_brief_extract_deterministic(client: TestClient) -> None:
    response = client.post("/brief/extract", json={"fieldType": "moq", "freeText": "MOQ is 500 units"})

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "deterministic"
    assert body["entities"][0]["type"] == "quantity"
    assert 0 <= body["confidence"] <= 1


def test_brief_extract_uses_llm_runtime_when_enabled(client: TestClient, bedrock_backends: None) -> None:
    response = client.post("/brief/extract", json={"fieldType": "where", "freeText": "Wall mounted in the lobby"})

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "bedrock"
    assert body["bulletPoints"] == ["Wall mounted in the lobby"]
    assert body["entities"] == [{"type": "mounting", "value": "wall", "confidence": 0.9}]
