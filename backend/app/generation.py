from __future__ import annotations

import logging
from typing import Protocol

from pydantic import Field, StrictStr

from app.ensemble import Candidate, average_confidence
from app.llm_runtime import LlmRuntimeError
from app.quality import QualityScorer
from app.schemas import CamelModel
from app.sections import MRD_SECTIONS, SectionSpec, extract_section_content, split_markdown_sections

logger = logging.getLogger("mrd.agents")

TEMPLATE_SECTION_CONFIDENCE = 75.0


class ResearchFinding(CamelModel):
    title: StrictStr
    url: StrictStr
    snippet: StrictStr = ""


class GeneratorInput(CamelModel):
    product_concept: StrictStr = Field(..., min_length=1)
    target_market: StrictStr = Field(..., min_length=1)
    additional_details: StrictStr | None = None
    research_findings: list[ResearchFinding] = Field(default_factory=list)
    request_id: StrictStr = Field(..., min_length=1)
    product_name: StrictStr | None = None


class CandidateGenerator(Protocol):
    source: str

    def generate(self, request: GeneratorInput, variant: int) -> Candidate: ...


def _bullets(items: list[str]) -> str:
    return "\n".join(f"* {item}" for item in items)


class TemplateCandidateGenerator:
    """Render a deterministic MRD skeleton from the request fields.

    The output depends only on the request, so repeated variants agree on every
    section and never fail.
    """

    source = "template-fallback"

    def generate(self, request: GeneratorInput, variant: int) -> Candidate:
        sections = self.render_sections(request)
        confidence = {number: TEMPLATE_SECTION_CONFIDENCE for number in sections}
        return Candidate(
            id=f"candidate-{variant}",
            sections=sections,
            confidence=confidence,
            overall_score=average_confidence(confidence),
            source=self.source,
        )

    @staticmethod
    def render_sections(request: GeneratorInput) -> dict[int, str]:
        concept = request.product_concept.strip()
        market = request.target_market.strip()
        details = (request.additional_details or "").strip()
        findings = request.research_findings

        competitors = [f"[{finding.title}]({finding.url})" for finding in findings] or ["[Competitor 1](https://example.com)"]
        research_notes = [
            f"**{finding.title}:** {finding.snippet.strip()}" for finding in findings if finding.snippet.strip()
        ]

        bodies: dict[int, str] = {
            1: f"{concept} for {market}.",
            2: _bullets([f"{market} lacks a purpose-built solution for: {concept}"]),
            3: "### Primary Markets\n\n"
            + _bullets([market])
            + "\n\n### Core Use Cases\n\n"
            + _bullets([details or "[Use case 1]"]),
            4: _bullets([f"Buyers and operators in {market}"]),
            5: "\n\n".join(part for part in (concept, details) if part),
            6: "### 6.1 Functional Requirements\n\n" + _bullets([details or "[Requirement 1]"]),
            7: _bullets(["[Design principle 1]"]),
            8: _bullets(["**Target price is $299**"]),
            9: "\n".join(research_notes) if research_notes else "[Risks to be assessed]",
            10: _bullets(competitors),
            11: _bullets(["**Consideration:** Description"]),
            12: _bullets(["[Criterion 1]"]),
        }

        sections: dict[int, str] = {}
        for spec in MRD_SECTIONS:
            heading = spec.heading if spec.number != 11 else f"{spec.heading} (Summary)"
            sections[spec.number] = f"{heading}\n\n{bodies[spec.number]}\n\n---"
        return sections


class DocumentRuntime(Protocol):
    def generate_document(self, request: GeneratorInput, variant: int) -> str: ...


class BedrockCandidateGenerator:
    source = "bedrock"

    def __init__(self, runtime: DocumentRuntime, *, section_table: tuple[SectionSpec, ...] = MRD_SECTIONS) -> None:
        self._runtime = runtime
        self._section_table = section_table

    def generate(self, request: GeneratorInput, variant: int) -> Candidate:
        markdown = self._runtime.generate_document(request, variant)
        sections = split_markdown_sections(markdown)
        if not sections:
            raise LlmRuntimeError("Generated document did not contain any numbered sections.")

        confidence: dict[int, float] = {}
        for spec in self._section_table:
            if spec.number not in sections:
                continue
            body = extract_section_content(sections[spec.number], spec.number)
            confidence[spec.number] = float(QualityScorer.score_section_content(body, spec))

        return Candidate(
            id=f"candidate-{variant}",
            sections=sections,
            confidence=confidence,
            overall_score=average_confidence(confidence),
            source=self.source,
        )


class FallbackCandidateGenerator:
    """Try ``primary`` first and fall back to ``fallback`` on runtime errors."""

    def __init__(self, primary: CandidateGenerator, fallback: CandidateGenerator) -> None:
        self._primary = primary
        self._fallback = fallback
        self.source = primary.source
        self.fallbacks_used = 0

    def generate(self, request: GeneratorInput, variant: int) -> Candidate:
        try:
            return self._primary.generate(request, variant)
        except LlmRuntimeError as exc:
            self.fallbacks_used += 1
            logger.warning(
                "agent_fallback_used",
                extra={
                    "event": "agent_fallback_used",
                    "variant": variant,
                    "primary_source": self._primary.source,
                    "fallback_source": self._fallback.source,
                    "error": str(exc),
                },
            )
            return self._fallback.generate(request, variant)
