from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from app.agents import QualityReviewer
from app.api.services.agents import run_agent
from app.config import settings


def build_quality_router() -> APIRouter:
    router = APIRouter(prefix="/quality", tags=["quality"])

    @router.post("/review")
    def review(payload: Any = Body(default=None)) -> dict[str, object]:
        agent = QualityReviewer(passing_score=settings.quality_passing_score)
        return run_agent(agent, payload)

    return router
