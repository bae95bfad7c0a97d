from __future__ import annotations

import logging

from fastapi import HTTPException
from pydantic import BaseModel

from app.agents import AgentResult, BaseAgent
from app.api.contracts import PROCESSING_FAILED, VALIDATION_FAILED, ErrorDetail

logger = logging.getLogger("mrd.api")


def serialize_agent_data(data: object) -> dict[str, object]:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True, mode="json")
    if isinstance(data, dict):
        return dict(data)
    return {"data": data}


def agent_envelope(result: AgentResult[object]) -> dict[str, object]:
    payload: dict[str, object] = {"success": True, **serialize_agent_data(result.data)}
    if result.warnings and "warnings" not in payload:
        payload["warnings"] = list(result.warnings)
    return payload


def run_agent(agent: BaseAgent, payload: object) -> dict[str, object]:
    result = agent.execute(payload)
    if result.success:
        return agent_envelope(result)

    if result.errors:
        detail: ErrorDetail = {"message": VALIDATION_FAILED, "errors": result.errors}
        raise HTTPException(status_code=400, detail=detail)

    logger.error(
        "agent_request_failed",
        extra={"event": "agent_request_failed", "agent": agent.id, "error": result.error},
    )
    detail = {"message": PROCESSING_FAILED, "errors": [result.error or "unknown error"]}
    raise HTTPException(status_code=500, detail=detail)
