from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from app.agents.base import BaseAgent
from app.agents.gap_detector import check_field_type
from app.extraction import (
    EXPECTED_ENTITY_TYPES,
    FIELD_FOCUS,
    ExtractionResult,
    TextExtractionInput,
    extract_deterministic,
    normalize_extraction_payload,
)
from app.llm_runtime import LlmRuntimeError

logger = logging.getLogger("mrd.agents")


class ExtractionRuntime(Protocol):
    def extract_field(
        self, field_type: str, free_text: str, *, focus: str, entity_types: tuple[str, ...]
    ) -> dict[str, object]: ...


class TextExtractionAgent(BaseAgent[TextExtractionInput, ExtractionResult]):
    id = "text-extraction-agent"
    name = "Text Extraction Agent"
    version = "1.0.0"
    description = "Extracts structured bullet points and entities from free-form brief text"
    input_model = TextExtractionInput

    def __init__(self, runtime: ExtractionRuntime | None = None) -> None:
        self._runtime = runtime

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        errors = check_field_type(payload)
        free_text = payload.get("freeText", payload.get("free_text"))
        if not isinstance(free_text, str) or not free_text:
            errors.append("freeText must be a non-empty string")
        elif not free_text.strip():
            errors.append("freeText cannot be empty or whitespace only")
        return errors

    def execute_core(self, parsed: TextExtractionInput, warnings: list[str]) -> ExtractionResult:
        if self._runtime is None:
            return extract_deterministic(parsed.field_type, parsed.free_text)

        try:
            payload = self._runtime.extract_field(
                parsed.field_type,
                parsed.free_text,
                focus=FIELD_FOCUS[parsed.field_type],
                entity_types=EXPECTED_ENTITY_TYPES[parsed.field_type],
            )
        except LlmRuntimeError as exc:
            logger.warning(
                "agent_fallback_used",
                extra={"event": "agent_fallback_used", "field_type": parsed.field_type, "error": str(exc)},
            )
            warnings.append(f"AI extraction unavailable, used deterministic extraction: {exc}")
            return extract_deterministic(parsed.field_type, parsed.free_text)

        return normalize_extraction_payload(payload, parsed.field_type, mode="bedrock")
