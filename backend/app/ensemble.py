from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping, Sequence, get_args

from pydantic import Field, StrictStr

from app.quality import QualityReview
from app.schemas import CamelModel

MergeStrategy = Literal["best-of-n", "section-voting", "confidence-weighted", "quality-weighted"]
MERGE_STRATEGIES: tuple[str, ...] = get_args(MergeStrategy)
DEFAULT_QUALITY_SCORE = 50.0
DEFAULT_QUALITY_WEIGHT = 0.6
# Vote tallies are compared after rounding to this many places.
TALLY_PRECISION = 6


class EnsembleMergeError(ValueError):
    """Raised when candidates cannot be merged under the requested options."""


class Candidate(CamelModel):
    id: StrictStr = Field(..., min_length=1)
    sections: dict[int, str] = Field(default_factory=dict)
    confidence: dict[int, float] = Field(default_factory=dict)
    overall_score: float = 0.0
    source: StrictStr = "unknown"
    quality_review: QualityReview | None = None


class MergeOptions(CamelModel):
    strategy: MergeStrategy
    min_confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    quality_weight: float = Field(default=DEFAULT_QUALITY_WEIGHT, ge=0.0, le=1.0)
    enable_tie_breaking: bool = True


class SectionVote(CamelModel):
    section_number: int
    winning_content: str
    winner_id: str
    votes: dict[str, float] = Field(default_factory=dict)
    confidence: float


class MergeResult(CamelModel):
    sections: dict[int, str]
    confidence: dict[int, float]
    strategy: MergeStrategy
    winners: dict[int, str] = Field(default_factory=dict)
    voting_details: list[SectionVote] | None = None
    overall_confidence: float
    low_confidence_sections: list[int] = Field(default_factory=list)


@dataclass
class _Variant:
    """One distinct text for a section together with the candidates that produced it."""

    content: str
    supporters: list[tuple[int, Candidate, float]] = field(default_factory=list)

    @property
    def support(self) -> int:
        return len(self.supporters)

    @property
    def confidence_total(self) -> float:
        return sum(confidence for _, _, confidence in self.supporters)

    @property
    def best(self) -> tuple[int, Candidate, float]:
        return max(self.supporters, key=lambda item: (item[2], -item[0]))


def _normalize_content(text: str) -> str:
    return " ".join(text.split())


def average_confidence(confidence: Mapping[int, float]) -> float:
    values = list(confidence.values())
    if not values:
        return 0.0
    return sum(values) / len(values)


class EnsembleMerger:
    """Select or combine several candidate MRDs into one document.

    Policies, all deterministic:

    * ``best-of-n`` keeps the whole candidate with the highest overall score.
    * ``section-voting`` counts how many candidates produced the same text
      (whitespace-normalised) for a section; the most common text wins and
      equal counts fall back to the highest single confidence.
    * ``confidence-weighted`` sums supporters' confidences per text; the
      largest sum wins.
    * ``quality-weighted`` blends each candidate's quality review score with
      its mean confidence, rescales its section confidences by that blend and
      then votes like ``confidence-weighted``.

    Ties are broken by longer content, then by the smaller candidate id, when
    ``enable_tie_breaking`` is set; otherwise the earliest candidate wins.
    """

    def merge(self, candidates: Sequence[Candidate], options: MergeOptions) -> MergeResult:
        if not candidates:
            raise EnsembleMergeError("Cannot merge empty candidate list")
        if options.strategy not in MERGE_STRATEGIES:
            raise EnsembleMergeError(f"Unknown merge strategy: {options.strategy}")

        if len(candidates) == 1:
            only = candidates[0]
            return MergeResult(
                sections=dict(only.sections),
                confidence=dict(only.confidence),
                strategy=options.strategy,
                winners=self._winners_for(only),
                overall_confidence=only.overall_score,
            )

        if options.strategy == "best-of-n":
            return self._merge_best_of_n(candidates, options)
        if options.strategy == "quality-weighted":
            rescored = [self._rescore_with_quality(candidate, options.quality_weight) for candidate in candidates]
            return self._merge_by_vote(rescored, options, tally="confidence")
        if options.strategy == "confidence-weighted":
            return self._merge_by_vote(candidates, options, tally="confidence")
        return self._merge_by_vote(candidates, options, tally="support")

    def _merge_best_of_n(self, candidates: Sequence[Candidate], options: MergeOptions) -> MergeResult:
        indexed = list(enumerate(candidates))
        if options.enable_tie_breaking:
            _, winner = min(indexed, key=lambda item: (-item[1].overall_score, item[1].id, item[0]))
        else:
            _, winner = min(indexed, key=lambda item: (-item[1].overall_score, item[0]))

        return MergeResult(
            sections=dict(winner.sections),
            confidence=dict(winner.confidence),
            strategy="best-of-n",
            winners=self._winners_for(winner),
            overall_confidence=winner.overall_score,
        )

    def _merge_by_vote(
        self,
        candidates: Sequence[Candidate],
        options: MergeOptions,
        *,
        tally: Literal["support", "confidence"],
    ) -> MergeResult:
        merged_sections: dict[int, str] = {}
        merged_confidence: dict[int, float] = {}
        winners: dict[int, str] = {}
        voting_details: list[SectionVote] = []
        low_confidence: list[int] = []

        for section_number in self._all_section_numbers(candidates):
            vote, below_threshold = self._vote_section(section_number, candidates, options, tally=tally)
            if vote is None:
                continue
            voting_details.append(vote)
            merged_sections[section_number] = vote.winning_content
            merged_confidence[section_number] = vote.confidence
            winners[section_number] = vote.winner_id
            if below_threshold:
                low_confidence.append(section_number)

        return MergeResult(
            sections=merged_sections,
            confidence=merged_confidence,
            strategy=options.strategy,
            winners=winners,
            voting_details=voting_details,
            overall_confidence=average_confidence(merged_confidence),
            low_confidence_sections=low_confidence,
        )

    def _vote_section(
        self,
        section_number: int,
        candidates: Sequence[Candidate],
        options: MergeOptions,
        *,
        tally: Literal["support", "confidence"],
    ) -> tuple[SectionVote | None, bool]:
        versions: list[tuple[int, Candidate, float]] = []
        for order, candidate in enumerate(candidates):
            content = candidate.sections.get(section_number)
            if not content:
                continue
            versions.append((order, candidate, float(candidate.confidence.get(section_number, 0.0))))
        if not versions:
            return None, False

        eligible = [version for version in versions if version[2] >= options.min_confidence]
        below_threshold = not eligible
        if below_threshold:
            eligible = versions

        variants: dict[str, _Variant] = {}
        for order, candidate, confidence in eligible:
            content = candidate.sections[section_number]
            key = _normalize_content(content)
            variant = variants.setdefault(key, _Variant(content=content))
            variant.supporters.append((order, candidate, confidence))

        def score(variant: _Variant) -> tuple[float, ...]:
            _, _, best_confidence = variant.best
            if tally == "support":
                return (float(variant.support), round(best_confidence, TALLY_PRECISION))
            return (round(variant.confidence_total, TALLY_PRECISION),)

        ranked = list(variants.values())
        top_score = max(score(variant) for variant in ranked)
        tied = [variant for variant in ranked if score(variant) == top_score]
        winner = self._break_tie(tied, options.enable_tie_breaking)
        winner_order, winner_candidate, winner_confidence = winner.best
        if len(winner.supporters) > 1 and options.enable_tie_breaking:
            top = max(confidence for _, _, confidence in winner.supporters)
            winner_order, winner_candidate, winner_confidence = min(
                (supporter for supporter in winner.supporters if supporter[2] == top),
                key=lambda item: (item[1].id, item[0]),
            )

        return (
            SectionVote(
                section_number=section_number,
                winning_content=winner_candidate.sections[section_number],
                winner_id=winner_candidate.id,
                votes={candidate.id: confidence for _, candidate, confidence in eligible},
                confidence=winner_confidence,
            ),
            below_threshold,
        )

    @staticmethod
    def _break_tie(tied: list[_Variant], enable_tie_breaking: bool) -> _Variant:
        if len(tied) == 1:
            return tied[0]
        if not enable_tie_breaking:
            return min(tied, key=lambda variant: min(order for order, _, _ in variant.supporters))
        return min(
            tied,
            key=lambda variant: (
                -len(variant.content),
                min(candidate.id for _, candidate, _ in variant.supporters),
            ),
        )

    @staticmethod
    def _rescore_with_quality(candidate: Candidate, quality_weight: float) -> Candidate:
        quality_score = (
            float(candidate.quality_review.overall_score)
            if candidate.quality_review is not None
            else DEFAULT_QUALITY_SCORE
        )
        avg_confidence = average_confidence(candidate.confidence)
        combined = quality_score * quality_weight + avg_confidence * (1 - quality_weight)

        if avg_confidence > 0:
            ratio = combined / avg_confidence
            rescaled = {number: value * ratio for number, value in candidate.confidence.items()}
        else:
            rescaled = {number: combined for number in candidate.confidence}

        return candidate.model_copy(update={"confidence": rescaled, "overall_score": combined})

    @staticmethod
    def _all_section_numbers(candidates: Sequence[Candidate]) -> list[int]:
        numbers: set[int] = set()
        for candidate in candidates:
            numbers.update(candidate.sections.keys())
        return sorted(numbers)

    @staticmethod
    def _winners_for(candidate: Candidate) -> dict[int, str]:
        return {number: candidate.id for number in candidate.sections}


def create_candidate(
    candidate_id: str,
    sections: Mapping[int, str],
    confidence: Mapping[int, float],
    source: str,
) -> Candidate:
    return Candidate(
        id=candidate_id,
        sections=dict(sections),
        confidence=dict(confidence),
        overall_score=average_confidence(confidence),
        source=source,
    )


def combine_sections(*outputs: Mapping[int, str]) -> dict[int, str]:
    combined: dict[int, str] = {}
    for output in outputs:
        combined.update(output)
    return combined


def combine_confidence(*outputs: Mapping[int, float]) -> dict[int, float]:
    combined: dict[int, float] = {}
    for output in outputs:
        combined.update(output)
    return combined
