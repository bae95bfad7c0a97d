from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from app.agents import GapDetectionAgent, TextExtractionAgent
from app.api.contracts import LlmRuntimeGetter
from app.api.services.agents import run_agent
from app.config import settings


def build_brief_router(*, get_llm_runtime: LlmRuntimeGetter) -> APIRouter:
    router = APIRouter(prefix="/brief", tags=["brief"])

    @router.post("/gaps")
    def detect_gaps(payload: Any = Body(default=None)) -> dict[str, object]:
        return run_agent(GapDetectionAgent(), payload)

    @router.post("/extract")
    def extract(payload: Any = Body(default=None)) -> dict[str, object]:
        runtime = get_llm_runtime() if settings.extraction_backend == "bedrock" else None
        return run_agent(TextExtractionAgent(runtime), payload)

    return router
