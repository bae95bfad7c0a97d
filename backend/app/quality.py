from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Sequence

from pydantic import Field, StrictStr

from app.schemas import CamelModel, round_half_up
from app.sections import MRD_SECTIONS, SectionSpec, extract_section_content

DEFAULT_PASSING_SCORE = 70
DIMENSION_WEIGHTS = {
    "completeness": 0.25,
    "specificity": 0.25,
    "structure": 0.15,
    "research": 0.20,
    "technical": 0.15,
}
PLACEHOLDER_MARKERS = ("TBD", "TODO", "[insert", "placeholder")


class SourceRef(CamelModel):
    title: StrictStr
    url: StrictStr


class QualityReviewInput(CamelModel):
    mrd_content: StrictStr = Field(..., min_length=1)
    sources: list[SourceRef]
    request_id: StrictStr | None = None
    product_concept: StrictStr | None = None
    target_market: StrictStr | None = None


class QualityDimensions(CamelModel):
    completeness: int = Field(..., ge=0, le=100)
    specificity: int = Field(..., ge=0, le=100)
    structure: int = Field(..., ge=0, le=100)
    research: int = Field(..., ge=0, le=100)
    technical: int = Field(..., ge=0, le=100)


class SectionQuality(CamelModel):
    section: int
    name: str
    present: bool
    score: int = Field(..., ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)


class QualityReview(CamelModel):
    overall_score: int = Field(..., ge=0, le=100)
    passed: bool
    dimensions: QualityDimensions
    sections: list[SectionQuality] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class QualityRubric:
    """Pattern tables and thresholds behind the five quality dimensions."""

    measurement_pattern: re.Pattern[str] = re.compile(r'\d+\s*(?:cm|mm|inch|"|kg|lbs|ft)', re.IGNORECASE)
    brand_pattern: re.Pattern[str] = re.compile(r"iPad|Surface|Android|VESA|Kensington|ADA", re.IGNORECASE)
    quantity_pattern: re.Pattern[str] = re.compile(r"\$\d+|[\d.]+%|\d+\s*units?", re.IGNORECASE)
    generic_pattern: re.Pattern[str] = re.compile(r"various|multiple|several|some|many", re.IGNORECASE)
    unit_pattern: re.Pattern[str] = re.compile(r"\d+\s*(?:cm|mm|inch|kg|lbs)")
    standards_pattern: re.Pattern[str] = re.compile(r"VESA|ADA|ANSI|BIFMA|UL|CE")
    technical_terms_pattern: re.Pattern[str] = re.compile(
        r"telescopic|mounting|compatibility|load capacity|durability"
    )
    url_pattern: re.Pattern[str] = re.compile(r"https?://[^\s)]+")
    measurement_threshold: int = 5
    brand_threshold: int = 3
    quantity_threshold: int = 3
    generic_threshold: int = 10


DEFAULT_RUBRIC = QualityRubric()


def _clamp(value: int) -> int:
    return max(0, min(value, 100))


def _count(pattern: re.Pattern[str], content: str) -> int:
    return len(pattern.findall(content))


class QualityScorer:
    def __init__(
        self,
        *,
        rubric: QualityRubric = DEFAULT_RUBRIC,
        sections: tuple[SectionSpec, ...] = MRD_SECTIONS,
        passing_score: int = DEFAULT_PASSING_SCORE,
    ) -> None:
        self._rubric = rubric
        self._sections = sections
        self._passing_score = passing_score

    @property
    def passing_score(self) -> int:
        return self._passing_score

    def review(self, content: str, sources: Sequence[SourceRef]) -> QualityReview:
        sections = self.check_sections(content)
        dimensions = QualityDimensions(
            completeness=self.assess_completeness(sections),
            specificity=self.assess_specificity(content),
            structure=self.assess_structure(content),
            research=self.assess_research(content, sources),
            technical=self.assess_technical(content),
        )
        overall_score = self.overall_score(dimensions)
        critical_issues = self._collect_critical_issues(sections, dimensions)

        return QualityReview(
            overall_score=overall_score,
            passed=self.is_passing(overall_score, critical_issues),
            dimensions=dimensions,
            sections=sections,
            critical_issues=critical_issues,
            suggestions=self._generate_suggestions(dimensions, sections),
            strengths=self._identify_strengths(dimensions, content),
        )

    def is_passing(self, overall_score: int, critical_issues: Sequence[str]) -> bool:
        return overall_score >= self._passing_score and not critical_issues

    @staticmethod
    def overall_score(dimensions: QualityDimensions) -> int:
        weighted = sum(getattr(dimensions, name) * weight for name, weight in DIMENSION_WEIGHTS.items())
        return round_half_up(weighted)

    def check_sections(self, content: str) -> list[SectionQuality]:
        results: list[SectionQuality] = []
        for spec in self._sections:
            if not spec.is_present(content):
                results.append(
                    SectionQuality(
                        section=spec.number,
                        name=spec.name,
                        present=False,
                        score=0,
                        issues=["Section is missing"],
                    )
                )
                continue

            body = extract_section_content(content, spec.number)
            results.append(
                SectionQuality(
                    section=spec.number,
                    name=spec.name,
                    present=True,
                    score=self.score_section_content(body, spec),
                    issues=self._find_section_issues(body, spec.number),
                    strengths=self._find_section_strengths(body, spec.number),
                )
            )
        return results

    @staticmethod
    def score_section_content(body: str, spec: SectionSpec) -> int:
        if not body or len(body) < 50:
            return 20

        score = 50
        if spec.expects_bullets and ("*" in body or "-" in body):
            score += 15
        if "**" in body:
            score += 10
        if re.search(r"\d", body):
            score += 10
        if len(body) > 200:
            score += 10
        if len(body) > 500:
            score += 5
        return min(score, 100)

    @staticmethod
    def _find_section_issues(body: str, section_number: int) -> list[str]:
        issues: list[str] = []
        if len(body) < 100:
            issues.append("Content is too brief - needs more detail")
        if any(marker in body for marker in PLACEHOLDER_MARKERS):
            issues.append("Contains placeholder text that should be replaced")
        if section_number == 8 and "$" not in body:
            issues.append("Target price should include dollar amount")
        if section_number == 10 and "http" not in body:
            issues.append("Competition section should include URLs")
        if section_number in (3, 6) and "###" not in body:
            issues.append("Expected to have subsections (H3 headings)")
        return issues

    @staticmethod
    def _find_section_strengths(body: str, section_number: int) -> list[str]:
        strengths: list[str] = []
        if len(body) > 500:
            strengths.append("Comprehensive content with good detail")
        if "**" in body and len(body.split("**")) > 6:
            strengths.append("Good use of emphasis on key points")
        if section_number == 10 and "http" in body:
            strengths.append("Includes competitor URLs for reference")
        if section_number in (6, 11) and "**" in body and ":" in body:
            strengths.append("Well-structured with labeled categories")
        return strengths

    @staticmethod
    def assess_completeness(sections: Sequence[SectionQuality]) -> int:
        if not sections:
            return 0
        present = sum(1 for section in sections if section.present)
        return round_half_up(present / len(sections) * 100)

    def assess_specificity(self, content: str) -> int:
        rubric = self._rubric
        score = 50
        if _count(rubric.measurement_pattern, content) > rubric.measurement_threshold:
            score += 15
        if _count(rubric.brand_pattern, content) > rubric.brand_threshold:
            score += 10
        if _count(rubric.quantity_pattern, content) > rubric.quantity_threshold:
            score += 10
        if _count(rubric.generic_pattern, content) > rubric.generic_threshold:
            score -= 10
        if "e.g.," in content or "such as" in content:
            score += 5
        return _clamp(score)

    @staticmethod
    def assess_structure(content: str) -> int:
        score = 50
        if len(re.findall(r"^##\s", content, flags=re.MULTILINE)) >= 12:
            score += 15
        if len(re.findall(r"^---$", content, flags=re.MULTILINE)) >= 10:
            score += 10
        if len(re.findall(r"^\*\s", content, flags=re.MULTILINE)) >= 20:
            score += 10
        if "\n\n" in content:
            score += 10
        if len(re.findall(r"[^\n]{500,}", content)) > 3:
            score -= 10
        return _clamp(score)

    def assess_research(self, content: str, sources: Sequence[SourceRef]) -> int:
        if not sources:
            return 30

        score = 40
        if len(sources) >= 3:
            score += 20
        else:
            score += 10

        urls_in_content = _count(self._rubric.url_pattern, content)
        if urls_in_content >= 3:
            score += 20
        elif urls_in_content >= 1:
            score += 10

        if "according to" in content or "research shows" in content:
            score += 10
        return _clamp(score)

    def assess_technical(self, content: str) -> int:
        rubric = self._rubric
        score = 60
        if rubric.unit_pattern.search(content):
            score += 10
        if rubric.standards_pattern.search(content):
            score += 10
        if rubric.technical_terms_pattern.search(content):
            score += 10
        if "TBD" in content or "TODO" in content:
            score -= 15
        return _clamp(score)

    @staticmethod
    def _collect_critical_issues(sections: Sequence[SectionQuality], dimensions: QualityDimensions) -> list[str]:
        issues: list[str] = []
        missing = [section.name for section in sections if not section.present]
        if missing:
            issues.append(f"Missing {len(missing)} required section(s): {', '.join(missing)}")
        if dimensions.completeness < 50:
            issues.append("Document is incomplete - less than 50% of sections present")
        if dimensions.specificity < 40:
            issues.append("Content is too generic - needs more specific details and measurements")
        return issues

    @staticmethod
    def _generate_suggestions(dimensions: QualityDimensions, sections: Sequence[SectionQuality]) -> list[str]:
        suggestions: list[str] = []
        if dimensions.specificity < 70:
            suggestions.append("Add more specific measurements, product names, and concrete examples")
        if dimensions.research < 60:
            suggestions.append("Better integrate research findings and cite sources more explicitly")
        if dimensions.technical < 70:
            suggestions.append("Include more technical specifications, standards, and measurable requirements")
        if dimensions.structure < 70:
            suggestions.append("Improve formatting with proper headings, bullet points, and spacing")

        weak = [section.name for section in sections if section.present and section.score < 60]
        if weak:
            suggestions.append(f"Expand these sections with more detail: {', '.join(weak)}")
        return suggestions

    @staticmethod
    def _identify_strengths(dimensions: QualityDimensions, content: str) -> list[str]:
        strengths: list[str] = []
        if dimensions.completeness >= 90:
            strengths.append("All required sections are present")
        if dimensions.specificity >= 75:
            strengths.append("Content includes specific, measurable details")
        if dimensions.research >= 75:
            strengths.append("Effective integration of research findings")
        if dimensions.structure >= 80:
            strengths.append("Well-structured with clear formatting")
        if len(content) > 5000:
            strengths.append("Comprehensive document with substantial detail")
        return strengths


def review_document(
    content: str,
    sources: Sequence[SourceRef | dict[str, str]],
    *,
    passing_score: int = DEFAULT_PASSING_SCORE,
) -> QualityReview:
    normalized = [source if isinstance(source, SourceRef) else SourceRef.model_validate(source) for source in sources]
    return QualityScorer(passing_score=passing_score).review(content, normalized)
