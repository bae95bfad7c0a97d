from __future__ import annotations

import pytest

from app.agents import (
    BaseAgent,
    EnsembleMergeAgent,
    EnsembleReviewer,
    GapDetectionAgent,
    QualityReviewer,
    TextExtractionAgent,
)
from app.generation import BedrockCandidateGenerator, FallbackCandidateGenerator, GeneratorInput, TemplateCandidateGenerator
from app.llm_runtime import LlmRuntimeError
from app.quality import QualityReview, QualityReviewInput
from app.sections import DOCUMENT_TITLE

FIELD_CHOICES = "fieldType must be one of: what, who, where, moq, must-have, nice-to-have"

GENERATOR_INPUT = {
    "productConcept": "Lockable tablet stand",
    "targetMarket": "Retail checkout counters",
    "additionalDetails": "Fits 10 inch tablets",
    "researchFindings": [{"title": "Stand Co", "url": "https://stand.example.com", "snippet": "Steel stands"}],
    "requestId": "req-1",
    "productName": "StandPro",
}


def review_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "generatorInput": GENERATOR_INPUT,
        "numGenerations": 3,
        "mergeStrategy": "section-voting",
    }
    payload.update(overrides)
    return payload


class FailingDocumentRuntime:
    def generate_document(self, request: GeneratorInput, variant: int) -> str:
        raise LlmRuntimeError("Bedrock invocation failed for model 'amazon.nova-pro-v1:0': throttled")


class FailingExtractionRuntime:
    def extract_field(self, field_type, free_text, *, focus, entity_types):
        raise LlmRuntimeError("Model response was not valid JSON.")


class StaticExtractionRuntime:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, tuple[str, ...]]] = []

    def extract_field(self, field_type, free_text, *, focus, entity_types):
        self.calls.append((field_type, free_text, entity_types))
        return {
            "bulletPoints": ["Minimum order 500 units"],
            "entities": [
                {"type": "quantity", "value": "500 units", "confidence": 0.95},
                {"type": "color", "value": "black", "confidence": 0.9},
            ],
        }


def test_gap_agent_reports_all_validation_errors() -> None:
    result = GapDetectionAgent().execute({})

    assert result.success is False
    assert result.error == "Validation failed"
    assert result.errors == [
        "fieldType is required",
        FIELD_CHOICES,
        "entities must be an array",
        "bulletPoints must be an array",
    ]

    invalid = GapDetectionAgent().execute({"fieldType": "price", "entities": [], "bulletPoints": []})
    assert invalid.errors == [FIELD_CHOICES]


def test_gap_agent_returns_detection_result() -> None:
    result = GapDetectionAgent().execute(
        {"fieldType": "moq", "entities": [], "bulletPoints": ["Minimum order quantity: 500 units"]}
    )

    assert result.success is True
    assert result.data is not None
    assert [gap.id for gap in result.data.gaps] == ["moq-volume_tiers"]
    assert result.metadata["agent_id"] == "gap-detection-agent"
    assert result.metadata["duration_ms"] >= 0


@pytest.mark.parametrize("payload", [None, "## 1. Purpose & Vision", ["mrdContent"]])
def test_quality_reviewer_rejects_non_object_payload(payload: object) -> None:
    result = QualityReviewer().execute(payload)

    assert result.success is False
    assert result.errors == ["Input must be a non-null object"]


def test_quality_reviewer_checks_fields() -> None:
    result = QualityReviewer().execute({"mrdContent": "", "sources": "none"})

    assert result.errors == ["mrdContent must be a non-empty string", "sources must be an array"]


def test_quality_reviewer_uses_configured_passing_score() -> None:
    content = "## 1. Purpose & Vision\n\nA stand."
    result = QualityReviewer(passing_score=0).execute({"mrdContent": content, "sources": []})

    assert result.success is True
    assert isinstance(result.data, QualityReview)
    assert result.data.critical_issues
    assert result.data.passed is False


def test_ensemble_reviewer_validation_messages() -> None:
    reviewer = EnsembleReviewer()

    assert reviewer.execute(review_payload(numGenerations=0)).errors == ["numGenerations must be between 1 and 10"]
    assert reviewer.execute(review_payload(numGenerations=11)).errors == ["numGenerations must be between 1 and 10"]

    missing = review_payload()
    del missing["mergeStrategy"]
    assert reviewer.execute(missing).errors == ["mergeStrategy is required"]

    assert reviewer.execute(review_payload(mergeStrategy="majority")).errors == [
        "mergeStrategy must be one of: best-of-n, section-voting, confidence-weighted, quality-weighted"
    ]
    assert reviewer.execute(review_payload(generatorInput=None)).errors == ["generatorInput is required"]


def test_ensemble_reviewer_respects_configured_generation_limit() -> None:
    result = EnsembleReviewer(max_generations=2).execute(review_payload(numGenerations=3))

    assert result.errors == ["numGenerations must be between 1 and 2"]


def test_ensemble_reviewer_merges_without_quality_review() -> None:
    result = EnsembleReviewer().execute(review_payload(enableQualityReview=False))

    assert result.success is True
    output = result.data
    assert output is not None
    assert output.candidates_generated == 3
    assert output.candidates_passed == 3
    assert sorted(output.sections) == list(range(1, 13))
    assert set(output.confidence.values()) == {75.0}
    assert output.overall_confidence == 75.0
    assert output.merge_result.strategy == "section-voting"
    assert output.warnings == []
    assert output.markdown.startswith(DOCUMENT_TITLE)
    assert "StandPro" in output.markdown


def test_ensemble_reviewer_zero_threshold_passes_every_candidate() -> None:
    result = EnsembleReviewer().execute(review_payload(minQualityThreshold=0))

    assert result.success is True
    assert result.data is not None
    assert result.data.candidates_passed == 3
    assert result.warnings == []


def test_ensemble_reviewer_merges_all_when_none_pass() -> None:
    result = EnsembleReviewer().execute(review_payload(minQualityThreshold=100))

    assert result.success is True
    output = result.data
    assert output is not None
    assert output.candidates_passed == 0
    assert output.candidates_generated == 3
    assert sorted(output.sections) == list(range(1, 13))
    assert "No candidate reached the minimum quality threshold of 100; merged all candidates" in result.warnings
    assert any(warning.startswith("Sections below the confidence threshold: 1, 2") for warning in result.warnings)
    assert output.warnings == result.warnings


def test_ensemble_reviewer_merge_option_overrides() -> None:
    result = EnsembleReviewer().execute(
        review_payload(enableQualityReview=False, mergeOptions={"minConfidence": 90, "enableTieBreaking": False})
    )

    assert result.data is not None
    assert result.data.merge_result.low_confidence_sections == list(range(1, 13))


def test_ensemble_reviewer_reports_template_fallbacks() -> None:
    generator = FallbackCandidateGenerator(
        BedrockCandidateGenerator(FailingDocumentRuntime()),
        TemplateCandidateGenerator(),
    )

    result = EnsembleReviewer(generator).execute(review_payload(enableQualityReview=False))

    assert result.success is True
    assert "3 of 3 candidates used the template fallback" in result.warnings
    assert generator.fallbacks_used == 3


def test_ensemble_merge_agent_uses_default_strategy_and_warns_on_duplicate_ids() -> None:
    candidate = {
        "id": "same",
        "sections": {"1": "## 1. Purpose & Vision\n\nA"},
        "confidence": {"1": 80},
        "overallScore": 80,
        "source": "api",
    }

    result = EnsembleMergeAgent(default_strategy="best-of-n").execute({"candidates": [candidate, dict(candidate)]})

    assert result.success is True
    assert result.data is not None
    assert result.data.strategy == "best-of-n"
    assert result.warnings == ["Candidate ids are not unique; winners may be ambiguous"]


def test_ensemble_merge_agent_requires_candidates() -> None:
    assert EnsembleMergeAgent().execute({"candidates": []}).errors == ["candidates must be a non-empty array"]
    assert EnsembleMergeAgent().execute({}).errors == ["candidates must be a non-empty array"]


def test_text_extraction_agent_validation() -> None:
    agent = TextExtractionAgent()

    assert agent.execute({"fieldType": "what", "freeText": "   "}).errors == [
        "freeText cannot be empty or whitespace only"
    ]
    assert agent.execute({"fieldType": "what"}).errors == ["freeText must be a non-empty string"]
    assert agent.execute({"freeText": "text"}).errors == ["fieldType is required", FIELD_CHOICES]


def test_text_extraction_agent_defaults_to_deterministic_mode() -> None:
    result = TextExtractionAgent().execute({"fieldType": "moq", "freeText": "Minimum order 500 units"})

    assert result.success is True
    assert result.data is not None
    assert result.data.mode == "deterministic"
    assert result.warnings == []


def test_text_extraction_agent_normalizes_runtime_output() -> None:
    runtime = StaticExtractionRuntime()
    result = TextExtractionAgent(runtime).execute({"fieldType": "moq", "freeText": "Minimum order 500 units"})

    assert result.data is not None
    assert result.data.mode == "bedrock"
    assert [entity.type for entity in result.data.entities] == ["quantity"]
    assert runtime.calls[0][2] == ("quantity", "volume", "tier", "range", "requirement")


def test_text_extraction_agent_falls_back_when_runtime_fails() -> None:
    result = TextExtractionAgent(FailingExtractionRuntime()).execute(
        {"fieldType": "moq", "freeText": "Minimum order 500 units"}
    )

    assert result.success is True
    assert result.data is not None
    assert result.data.mode == "deterministic"
    assert result.warnings == [
        "AI extraction unavailable, used deterministic extraction: Model response was not valid JSON."
    ]


def test_agent_processing_errors_are_wrapped() -> None:
    class ExplodingAgent(BaseAgent[QualityReviewInput, QualityReview]):
        id = "exploding-agent"
        input_model = QualityReviewInput

        def execute_core(self, parsed: QualityReviewInput, warnings: list[str]) -> QualityReview:
            warnings.append("about to fail")
            raise RuntimeError("scorer unavailable")

    result = ExplodingAgent().execute({"mrdContent": "text", "sources": []})

    assert result.success is False
    assert result.error == "scorer unavailable"
    assert result.errors == []
    assert result.warnings == ["about to fail"]
    assert result.metadata["agent_id"] == "exploding-agent"
