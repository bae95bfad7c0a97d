from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from app.agents import EnsembleMergeAgent, EnsembleReviewer
from app.api.contracts import LlmRuntimeGetter
from app.api.services.agents import run_agent
from app.config import settings
from app.generation import (
    BedrockCandidateGenerator,
    CandidateGenerator,
    FallbackCandidateGenerator,
    TemplateCandidateGenerator,
)
from app.quality import QualityScorer


def build_candidate_generator(get_llm_runtime: LlmRuntimeGetter) -> CandidateGenerator:
    template = TemplateCandidateGenerator()
    if settings.generation_backend != "bedrock":
        return template
    return FallbackCandidateGenerator(BedrockCandidateGenerator(get_llm_runtime()), template)


def build_ensemble_router(*, get_llm_runtime: LlmRuntimeGetter) -> APIRouter:
    router = APIRouter(prefix="/ensemble", tags=["ensemble"])

    @router.post("/merge")
    def merge(payload: Any = Body(default=None)) -> dict[str, object]:
        agent = EnsembleMergeAgent(default_strategy=settings.ensemble_default_strategy)
        return run_agent(agent, payload)

    @router.post("/review")
    def review(payload: Any = Body(default=None)) -> dict[str, object]:
        agent = EnsembleReviewer(
            build_candidate_generator(get_llm_runtime),
            scorer=QualityScorer(passing_score=settings.quality_passing_score),
            min_quality_threshold=settings.ensemble_min_quality_threshold,
            quality_weight=settings.ensemble_quality_weight,
            max_generations=settings.ensemble_max_generations,
        )
        return run_agent(agent, payload)

    return router
