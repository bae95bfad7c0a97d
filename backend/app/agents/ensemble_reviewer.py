from __future__ import annotations

from typing import Any, Mapping

from pydantic import Field

from app.agents.base import BaseAgent
from app.ensemble import (
    DEFAULT_QUALITY_WEIGHT,
    MERGE_STRATEGIES,
    Candidate,
    EnsembleMerger,
    MergeOptions,
    MergeResult,
    MergeStrategy,
)
from app.generation import CandidateGenerator, GeneratorInput, TemplateCandidateGenerator
from app.quality import QualityScorer, SourceRef
from app.schemas import CamelModel
from app.sections import sections_to_markdown

DEFAULT_MIN_QUALITY_THRESHOLD = 60.0
MAX_GENERATIONS = 10


class MergeOptionsOverride(CamelModel):
    min_confidence: float | None = Field(default=None, ge=0.0, le=100.0)
    quality_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    enable_tie_breaking: bool | None = None


class EnsembleReviewInput(CamelModel):
    generator_input: GeneratorInput
    num_generations: int = Field(..., ge=1, le=MAX_GENERATIONS)
    merge_strategy: MergeStrategy
    enable_quality_review: bool = True
    min_quality_threshold: float | None = Field(default=None, ge=0.0, le=100.0)
    merge_options: MergeOptionsOverride | None = None


class EnsembleReviewOutput(CamelModel):
    sections: dict[int, str]
    confidence: dict[int, float]
    merge_result: MergeResult
    candidates_generated: int
    candidates_passed: int
    overall_confidence: float
    warnings: list[str] = Field(default_factory=list)
    markdown: str


class EnsembleReviewer(BaseAgent[EnsembleReviewInput, EnsembleReviewOutput]):
    id = "ensemble-reviewer"
    name = "Ensemble Reviewer"
    version = "1.0.0"
    description = "Generates several MRD candidates, reviews them and merges them with a voting strategy"
    input_model = EnsembleReviewInput

    def __init__(
        self,
        generator: CandidateGenerator | None = None,
        *,
        scorer: QualityScorer | None = None,
        merger: EnsembleMerger | None = None,
        min_quality_threshold: float = DEFAULT_MIN_QUALITY_THRESHOLD,
        quality_weight: float = DEFAULT_QUALITY_WEIGHT,
        max_generations: int = MAX_GENERATIONS,
    ) -> None:
        self._generator = generator or TemplateCandidateGenerator()
        self._scorer = scorer or QualityScorer()
        self._merger = merger or EnsembleMerger()
        self._min_quality_threshold = min_quality_threshold
        self._quality_weight = quality_weight
        self._max_generations = max_generations

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        if not payload.get("generatorInput", payload.get("generator_input")):
            errors.append("generatorInput is required")

        num_generations = payload.get("numGenerations", payload.get("num_generations"))
        if (
            isinstance(num_generations, bool)
            or not isinstance(num_generations, int)
            or not 1 <= num_generations <= MAX_GENERATIONS
        ):
            errors.append(f"numGenerations must be between 1 and {MAX_GENERATIONS}")

        strategy = payload.get("mergeStrategy", payload.get("merge_strategy"))
        if not strategy:
            errors.append("mergeStrategy is required")
        elif strategy not in MERGE_STRATEGIES:
            errors.append(f"mergeStrategy must be one of: {', '.join(MERGE_STRATEGIES)}")
        return errors

    def extra_validation(self, parsed: EnsembleReviewInput) -> list[str]:
        if parsed.num_generations > self._max_generations:
            return [f"numGenerations must be between 1 and {self._max_generations}"]
        return []

    def execute_core(self, parsed: EnsembleReviewInput, warnings: list[str]) -> EnsembleReviewOutput:
        request = parsed.generator_input
        threshold = (
            parsed.min_quality_threshold
            if parsed.min_quality_threshold is not None
            else self._min_quality_threshold
        )

        candidates = [self._generator.generate(request, variant) for variant in range(1, parsed.num_generations + 1)]
        fallback_count = sum(1 for candidate in candidates if candidate.source != self._generator.source)
        if fallback_count:
            warnings.append(
                f"{fallback_count} of {len(candidates)} candidates used the template fallback"
            )

        pool = candidates
        candidates_passed = len(candidates)
        if parsed.enable_quality_review:
            candidates = self._review_candidates(candidates, request)
            passed = [
                candidate
                for candidate in candidates
                if candidate.quality_review is not None and candidate.quality_review.overall_score >= threshold
            ]
            candidates_passed = len(passed)
            if passed:
                pool = passed
            else:
                pool = candidates
                warnings.append(
                    f"No candidate reached the minimum quality threshold of {threshold:g}; merged all candidates"
                )

        options = self._merge_options(parsed, threshold)
        merge_result = self._merger.merge(pool, options)
        if merge_result.low_confidence_sections:
            numbers = ", ".join(str(number) for number in merge_result.low_confidence_sections)
            warnings.append(f"Sections below the confidence threshold: {numbers}")

        return EnsembleReviewOutput(
            sections=merge_result.sections,
            confidence=merge_result.confidence,
            merge_result=merge_result,
            candidates_generated=len(candidates),
            candidates_passed=candidates_passed,
            overall_confidence=merge_result.overall_confidence,
            warnings=list(warnings),
            markdown=sections_to_markdown(merge_result.sections, product_name=request.product_name),
        )

    def _review_candidates(self, candidates: list[Candidate], request: GeneratorInput) -> list[Candidate]:
        sources = [SourceRef(title=finding.title, url=finding.url) for finding in request.research_findings]
        reviewed: list[Candidate] = []
        for candidate in candidates:
            markdown = sections_to_markdown(candidate.sections, product_name=request.product_name)
            review = self._scorer.review(markdown, sources)
            reviewed.append(candidate.model_copy(update={"quality_review": review}))
        return reviewed

    def _merge_options(self, parsed: EnsembleReviewInput, threshold: float) -> MergeOptions:
        options = MergeOptions(
            strategy=parsed.merge_strategy,
            min_confidence=threshold,
            quality_weight=self._quality_weight,
            enable_tie_breaking=True,
        )
        if parsed.merge_options is None:
            return options
        overrides = parsed.merge_options.model_dump(exclude_none=True)
        return options.model_copy(update=overrides)


class EnsembleMergeInput(CamelModel):
    candidates: list[Candidate] = Field(..., min_length=1)
    options: MergeOptions | None = None


class EnsembleMergeAgent(BaseAgent[EnsembleMergeInput, MergeResult]):
    id = "ensemble-merger"
    name = "Ensemble Merger"
    version = "1.0.0"
    description = "Merges caller-supplied MRD candidates with a voting strategy"
    input_model = EnsembleMergeInput

    def __init__(self, merger: EnsembleMerger | None = None, *, default_strategy: MergeStrategy = "section-voting") -> None:
        self._merger = merger or EnsembleMerger()
        self._default_strategy = default_strategy

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return ["candidates must be a non-empty array"]
        return []

    def execute_core(self, parsed: EnsembleMergeInput, warnings: list[str]) -> MergeResult:
        ids = [candidate.id for candidate in parsed.candidates]
        if len(set(ids)) != len(ids):
            warnings.append("Candidate ids are not unique; winners may be ambiguous")
        options = parsed.options or MergeOptions(strategy=self._default_strategy)
        return self._merger.merge(parsed.candidates, options)
