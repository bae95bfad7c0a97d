from __future__ import annotations

import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

from app.config import Settings

if TYPE_CHECKING:
    from app.generation import GeneratorInput

logger = logging.getLogger("mrd.llm")

MRD_SECTION_OUTLINE = (
    "1. Purpose & Vision; 2. Problem Statement; 3. Target Market & Use Cases; 4. Target Users; "
    "5. Product Description; 6. Key Requirements; 7. Design & Aesthetics; 8. Target Price; "
    "9. Risks and Thoughts; 10. Competition to review; 11. Additional Considerations; 12. Success Criteria"
)
VARIANT_STYLES = (
    "Balance market and technical detail.",
    "Emphasise measurable technical specifications and standards.",
    "Emphasise customer use cases and competitive positioning.",
)


class LlmRuntimeError(RuntimeError):
    """Raised when the model invocation fails or returns unusable output."""


class BedrockMrdRuntime:
    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._create_bedrock_client()
        return self._client

    def generate_document(self, request: GeneratorInput, variant: int) -> str:
        system_prompt = (
            "You are a product manager writing a Market Requirements Document. "
            "Respond with markdown only. Use exactly these numbered H2 headings in order: "
            f"{MRD_SECTION_OUTLINE}. Separate sections with '---' lines, prefer '* ' bullets, "
            "state concrete measurements, prices and standards, and cite research URLs where relevant."
        )
        findings = "\n".join(
            f"- {finding.title} ({finding.url}): {finding.snippet}" for finding in request.research_findings
        )
        style = VARIANT_STYLES[(variant - 1) % len(VARIANT_STYLES)]
        user_prompt = (
            f"Product concept: {request.product_concept}\n"
            f"Target market: {request.target_market}\n"
            f"Additional details: {request.additional_details or 'none'}\n\n"
            f"Research findings:\n{findings or '- none'}\n\n"
            f"Draft variant {variant}. {style}"
        )
        return self._invoke_text_model(self._settings.bedrock_model_id, system_prompt, user_prompt)

    def extract_field(self, field_type: str, free_text: str, *, focus: str, entity_types: tuple[str, ...]) -> dict[str, object]:
        system_prompt = (
            f"{focus}\n\n"
            "Return strict JSON only in the form "
            '{"bulletPoints": ["..."], "entities": [{"type": "...", "value": "...", "confidence": 0.9, "span": "..."}]}. '
            f"Use entity types: {', '.join(entity_types)}. Confidence must be between 0 and 1."
        )
        user_prompt = (
            f'Extract structured information from this free-form text for the "{field_type}" field:\n\n'
            f'"""\n{free_text}\n"""'
        )
        return self._invoke_json_model(self._settings.bedrock_lite_model_id, system_prompt, user_prompt)

    def _create_bedrock_client(self) -> Any:
        try:
            import boto3  # type: ignore
        except ImportError as exc:
            raise LlmRuntimeError("boto3 is required for the Bedrock runtime.") from exc

        return boto3.client("bedrock-runtime", region_name=self._settings.aws_region)

    def _invoke_text_model(self, model_id: str, system_prompt: str, user_prompt: str) -> str:
        if not model_id:
            raise LlmRuntimeError("Bedrock model ID is not configured.")

        started = time.perf_counter()
        try:
            response = self.client.converse(
                modelId=model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": [{"text": user_prompt}]}],
                inferenceConfig={
                    "temperature": self._settings.agent_temperature,
                    "maxTokens": self._settings.agent_max_tokens,
                },
            )
        except LlmRuntimeError:
            raise
        except Exception as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.warning(
                "llm_invoke_failed",
                extra={
                    "event": "llm_invoke_failed",
                    "model_id": model_id,
                    "duration_ms": duration_ms,
                    "error": str(exc),
                },
            )
            raise LlmRuntimeError(f"Bedrock invocation failed for model '{model_id}': {exc}") from exc

        text = self._extract_text(response)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "llm_invoke_completed",
            extra={
                "event": "llm_invoke_completed",
                "model_id": model_id,
                "duration_ms": duration_ms,
                "system_prompt_chars": len(system_prompt),
                "user_prompt_chars": len(user_prompt),
                "response_chars": len(text),
            },
        )
        return text

    def _invoke_json_model(self, model_id: str, system_prompt: str, user_prompt: str) -> dict[str, object]:
        text = self._invoke_text_model(model_id, system_prompt, user_prompt)
        payload = self._parse_json_object(text)
        if not isinstance(payload, dict):
            raise LlmRuntimeError("Model response must be a JSON object.")
        return payload

    @staticmethod
    def _extract_text(response: Any) -> str:
        outputs = response.get("output", {}).get("message", {}).get("content", [])
        parts: list[str] = []
        for item in outputs:
            text = item.get("text")
            if isinstance(text, str) and text.strip():
                parts.append(text)
        if not parts:
            raise LlmRuntimeError("Model response did not include textual output.")
        return "\n".join(parts).strip()

    @staticmethod
    def _parse_json_object(raw: str) -> Any:
        candidate = raw.strip()
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass

        fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", candidate, flags=re.IGNORECASE | re.DOTALL)
        if fenced:
            try:
                return json.loads(fenced.group(1))
            except json.JSONDecodeError:
                pass

        start = candidate.find("{")
        end = candidate.rfind("}")
        if start != -1 and end != -1 and end > start:
            try:
                return json.loads(candidate[start : end + 1])
            except json.JSONDecodeError as exc:
                raise LlmRuntimeError("Model response contained malformed JSON content.") from exc

        raise LlmRuntimeError("Model response was not valid JSON.")
