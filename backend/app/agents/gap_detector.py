from __future__ import annotations

from typing import Any, Mapping

from app.agents.base import BaseAgent
from app.gaps import BRIEF_FIELDS, GapDetectionInput, GapDetectionResult, GapDetector


def check_field_type(payload: Mapping[str, Any]) -> list[str]:
    field_type = payload.get("fieldType", payload.get("field_type"))
    if not field_type:
        return ["fieldType is required", f"fieldType must be one of: {', '.join(BRIEF_FIELDS)}"]
    if field_type not in BRIEF_FIELDS:
        return [f"fieldType must be one of: {', '.join(BRIEF_FIELDS)}"]
    return []


class GapDetectionAgent(BaseAgent[GapDetectionInput, GapDetectionResult]):
    id = "gap-detection-agent"
    name = "Gap Detection Agent"
    version = "1.0.0"
    description = "Finds missing information in a brief field using product and field rule tables"
    input_model = GapDetectionInput

    def __init__(self, detector: GapDetector | None = None) -> None:
        self._detector = detector or GapDetector()

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        errors = check_field_type(payload)
        if not isinstance(payload.get("entities"), list):
            errors.append("entities must be an array")
        bullets = payload.get("bulletPoints", payload.get("bullet_points"))
        if not isinstance(bullets, list):
            errors.append("bulletPoints must be an array")
        return errors

    def execute_core(self, parsed: GapDetectionInput, warnings: list[str]) -> GapDetectionResult:
        return self._detector.detect(parsed.field_type, parsed.entities, parsed.bullet_points)
