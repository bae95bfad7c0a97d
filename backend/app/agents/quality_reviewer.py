from __future__ import annotations

from typing import Any, Mapping

from app.agents.base import BaseAgent
from app.quality import DEFAULT_PASSING_SCORE, QualityReview, QualityReviewInput, QualityScorer


class QualityReviewer(BaseAgent[QualityReviewInput, QualityReview]):
    id = "quality-reviewer"
    name = "Quality Reviewer"
    version = "1.0.0"
    description = "Scores an MRD on completeness, specificity, structure, research and technical depth"
    input_model = QualityReviewInput

    def __init__(self, scorer: QualityScorer | None = None, *, passing_score: int = DEFAULT_PASSING_SCORE) -> None:
        self._scorer = scorer or QualityScorer(passing_score=passing_score)

    @property
    def scorer(self) -> QualityScorer:
        return self._scorer

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        content = payload.get("mrdContent", payload.get("mrd_content"))
        if not isinstance(content, str) or not content:
            errors.append("mrdContent must be a non-empty string")
        if not isinstance(payload.get("sources"), list):
            errors.append("sources must be an array")
        return errors

    def execute_core(self, parsed: QualityReviewInput, warnings: list[str]) -> QualityReview:
        return self._scorer.review(parsed.mrd_content, parsed.sources)
