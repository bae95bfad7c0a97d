from __future__ import annotations

import pytest

from app.quality import QualityDimensions, QualityScorer, SourceRef, review_document
from app.schemas import round_half_up
from app.sections import MRD_SECTIONS, section_by_number

SECTION_EXTRAS = {
    5: "Footprint 20 cm x 25 cm, height 30 cm, weight 2 kg, arm 15 cm, base 10 mm, screen 11 inch.",
    6: "Compatible with iPad, Surface and Android tablets on VESA mounting plates, such as 75x75.",
    8: "Target price is $299 with 15% and 20% volume discounts from 500 units.",
    9: "Demand is rising according to retail surveys.",
    10: "[Alpha](https://alpha.example.com) [Beta](https://beta.example.com) [Gamma](https://gamma.example.com)",
}

SOURCES = [
    SourceRef(title="Alpha", url="https://alpha.example.com"),
    SourceRef(title="Beta", url="https://beta.example.com"),
    SourceRef(title="Gamma", url="https://gamma.example.com"),
]


def build_mrd(skip: tuple[int, ...] = ()) -> str:
    lines = ["# Market Requirements Document (MRD)", ""]
    for spec in MRD_SECTIONS:
        if spec.number in skip:
            continue
        lines.extend(
            [
                spec.heading,
                "",
                f"* **Point {spec.number}:** Requirement detail for section {spec.number}",
                f"* **Detail:** Supporting note {spec.number}",
            ]
        )
        if spec.number in SECTION_EXTRAS:
            lines.append(SECTION_EXTRAS[spec.number])
        lines.extend(["", "---", ""])
    return "\n".join(lines)


def test_complete_document_scores_every_dimension() -> None:
    review = QualityScorer().review(build_mrd(), SOURCES)

    assert review.dimensions == QualityDimensions(
        completeness=100,
        specificity=90,
        structure=95,
        research=90,
        technical=90,
    )
    assert review.overall_score == 93
    assert review.passed is True
    assert review.critical_issues == []
    assert "All required sections are present" in review.strengths
    assert all(section.present for section in review.sections)


@pytest.mark.parametrize(
    ("skip", "expected"),
    [
        ((), 100),
        ((8,), 92),
        ((2, 4, 6), 75),
        ((1, 3, 5, 7, 9), 58),
        (tuple(range(1, 13)), 0),
    ],
)
def test_completeness_tracks_missing_sections(skip: tuple[int, ...], expected: int) -> None:
    review = QualityScorer().review(build_mrd(skip), SOURCES)

    assert review.dimensions.completeness == expected
    assert expected == round_half_up((12 - len(skip)) / 12 * 100)


def test_missing_section_is_a_critical_issue_and_fails_review() -> None:
    review = QualityScorer().review(build_mrd(skip=(8,)), SOURCES)

    assert review.passed is False
    assert review.critical_issues[0] == "Missing 1 required section(s): Target Price"
    missing = [section for section in review.sections if not section.present]
    assert [section.section for section in missing] == [8]
    assert missing[0].score == 0
    assert missing[0].issues == ["Section is missing"]


def test_overall_score_is_weighted_and_rounded_half_up() -> None:
    dimensions = QualityDimensions(completeness=50, specificity=50, structure=50, research=50, technical=52)
    # 50 * 0.85 + 52 * 0.15 = 50.3
    assert QualityScorer.overall_score(dimensions) == 50

    dimensions = QualityDimensions(completeness=91, specificity=60, structure=70, research=50, technical=60)
    # 22.75 + 15 + 10.5 + 10 + 9 = 67.25
    assert QualityScorer.overall_score(dimensions) == 67

    review = QualityScorer().review(build_mrd(skip=(3,)), SOURCES)
    d = review.dimensions
    expected = round_half_up(
        0.25 * d.completeness + 0.25 * d.specificity + 0.15 * d.structure + 0.2 * d.research + 0.15 * d.technical
    )
    assert review.overall_score == expected


def test_passing_boundary_requires_seventy_and_no_critical_issues() -> None:
    scorer = QualityScorer()
    assert scorer.is_passing(69, []) is False
    assert scorer.is_passing(70, []) is True
    assert scorer.is_passing(70, ["Missing 1 required section(s): Target Price"]) is False


def test_reviewed_document_passes_exactly_at_the_threshold() -> None:
    document = build_mrd()

    at_threshold = QualityScorer(passing_score=93).review(document, SOURCES)
    one_below = QualityScorer(passing_score=94).review(document, SOURCES)

    assert at_threshold.overall_score == 93
    assert at_threshold.passed is True
    assert one_below.overall_score == 93
    assert one_below.passed is False


def test_reviewed_document_at_threshold_with_missing_section_fails() -> None:
    document = build_mrd(skip=(8,))
    score = QualityScorer().review(document, SOURCES).overall_score

    review = QualityScorer(passing_score=score).review(document, SOURCES)

    assert review.overall_score == score
    assert review.critical_issues[0] == "Missing 1 required section(s): Target Price"
    assert review.passed is False


def test_passing_score_is_configurable() -> None:
    scorer = QualityScorer(passing_score=95)
    review = scorer.review(build_mrd(), SOURCES)
    assert review.overall_score == 93
    assert review.passed is False


def test_specificity_bonuses_and_penalties() -> None:
    scorer = QualityScorer()
    assert scorer.assess_specificity("") == 50
    assert scorer.assess_specificity("10 cm, 12 cm, 14 cm, 16 cm, 18 cm, 20 cm") == 65
    assert scorer.assess_specificity("10 cm, 12 cm, 14 cm, 16 cm, 18 cm") == 50
    assert scorer.assess_specificity("iPad Surface Android VESA") == 60
    assert scorer.assess_specificity("$5 $6 $7 $8") == 60
    assert scorer.assess_specificity("some " * 11) == 40
    assert scorer.assess_specificity("accessories such as cables") == 55


def test_structure_rewards_headings_rules_and_bullets() -> None:
    content = "\n".join(
        [f"## {number}. Heading\n\n* first\n* second\n\n---" for number in range(1, 13)]
    )
    assert QualityScorer.assess_structure(content) == 95
    assert QualityScorer.assess_structure("single line") == 50
    assert QualityScorer.assess_structure("\n\n".join(["x" * 600] * 4)) == 50


def test_research_depends_on_sources_and_citations() -> None:
    scorer = QualityScorer()
    assert scorer.assess_research("anything", []) == 30
    assert scorer.assess_research("no links", SOURCES[:1]) == 50
    content = "according to https://a.example https://b.example https://c.example"
    assert scorer.assess_research(content, SOURCES) == 90


def test_technical_rewards_units_standards_terms_and_penalises_placeholders() -> None:
    scorer = QualityScorer()
    assert scorer.assess_technical("plain text") == 60
    assert scorer.assess_technical("10 mm plate with VESA mounting") == 90
    assert scorer.assess_technical("TBD") == 45


def test_section_content_scoring() -> None:
    price = section_by_number(8)
    assert price is not None
    assert QualityScorer.score_section_content("", price) == 20
    assert QualityScorer.score_section_content("short body", price) == 20

    body = "* **Target price is $299** for the base configuration with volume discounts available"
    assert QualityScorer.score_section_content(body, price) == 70

    problem = section_by_number(2)
    assert problem is not None
    assert QualityScorer.score_section_content(body, problem) == 85
    assert QualityScorer.score_section_content(body + " " + "x" * 500, problem) == 100


def test_section_issues_flag_placeholders_and_missing_price() -> None:
    content = "## 8. Target Price\n\nTBD\n\n## 9. Risks and Thoughts\n\nNone yet"
    review = QualityScorer().review(content, [])
    price = next(section for section in review.sections if section.section == 8)

    assert price.present is True
    assert "Contains placeholder text that should be replaced" in price.issues
    assert "Target price should include dollar amount" in price.issues
    assert "Content is too brief - needs more detail" in price.issues


def test_review_document_accepts_plain_source_dicts() -> None:
    review = review_document(build_mrd(), [{"title": "Alpha", "url": "https://alpha.example.com"}])
    assert review.dimensions.research == 80
