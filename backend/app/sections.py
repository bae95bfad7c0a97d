from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Mapping

DOCUMENT_TITLE = "# Market Requirements Document (MRD)"
SECTION_HEADING_PATTERN = re.compile(r"^##\s*(\d{1,2})\.(?!\d)[^\n]*$", flags=re.MULTILINE)


@dataclass(frozen=True)
class SectionSpec:
    number: int
    name: str
    pattern: re.Pattern[str]
    expects_bullets: bool = False

    @property
    def heading(self) -> str:
        return f"## {self.number}. {self.name}"

    def is_present(self, content: str) -> bool:
        return self.pattern.search(content) is not None


def _heading(expression: str) -> re.Pattern[str]:
    return re.compile(expression, flags=re.IGNORECASE)


MRD_SECTIONS: tuple[SectionSpec, ...] = (
    SectionSpec(1, "Purpose & Vision", _heading(r"##\s*1\.\s*Purpose\s*&\s*Vision")),
    SectionSpec(2, "Problem Statement", _heading(r"##\s*2\.\s*Problem\s+Statement"), True),
    SectionSpec(3, "Target Market & Use Cases", _heading(r"##\s*3\.\s*Target\s+Market"), True),
    SectionSpec(4, "Target Users", _heading(r"##\s*4\.\s*Target\s+Users"), True),
    SectionSpec(5, "Product Description", _heading(r"##\s*5\.\s*Product\s+Description")),
    SectionSpec(6, "Key Requirements", _heading(r"##\s*6\.\s*Key\s+Requirements"), True),
    SectionSpec(7, "Design & Aesthetics", _heading(r"##\s*7\.\s*Design\s*&\s*Aesthetics"), True),
    SectionSpec(8, "Target Price", _heading(r"##\s*8\.\s*Target\s+Price")),
    SectionSpec(9, "Risks and Thoughts", _heading(r"##\s*9\.\s*Risks\s+and\s+Thoughts")),
    SectionSpec(10, "Competition to review", _heading(r"##\s*10\.\s*Competition"), True),
    SectionSpec(11, "Additional Considerations", _heading(r"##\s*11\.\s*Additional\s+Considerations"), True),
    SectionSpec(12, "Success Criteria", _heading(r"##\s*12\.\s*Success\s+Criteria"), True),
)


def section_by_number(number: int, sections: tuple[SectionSpec, ...] = MRD_SECTIONS) -> SectionSpec | None:
    return next((spec for spec in sections if spec.number == number), None)


def extract_section_content(content: str, section_number: int) -> str:
    """Return the body between the ``## N.`` heading line and the ``## N+1.`` heading."""
    current = re.search(rf"##\s*{section_number}\.\s*[^\n]+\n", content, flags=re.IGNORECASE)
    if current is None:
        return ""

    remainder = content[current.end() :]
    following = re.search(rf"##\s*{section_number + 1}\.\s*[^\n]+", remainder, flags=re.IGNORECASE)
    if following is not None:
        return remainder[: following.start()].strip()
    return remainder.strip()


def split_markdown_sections(markdown: str) -> dict[int, str]:
    """Split a rendered MRD into section texts keyed by heading number.

    Each value keeps its own ``## N.`` heading so it can be re-assembled with
    :func:`sections_to_markdown`. A repeated number keeps the first occurrence.
    """
    matches = list(SECTION_HEADING_PATTERN.finditer(markdown))
    sections: dict[int, str] = {}
    for index, match in enumerate(matches):
        number = int(match.group(1))
        end = matches[index + 1].start() if index + 1 < len(matches) else len(markdown)
        if number in sections:
            continue
        text = markdown[match.start() : end].strip()
        if text:
            sections[number] = text
    return sections


def sections_to_markdown(
    sections: Mapping[int, str],
    *,
    product_name: str | None = None,
    section_table: tuple[SectionSpec, ...] = MRD_SECTIONS,
) -> str:
    parts: list[str] = [
        DOCUMENT_TITLE,
        "",
        "---",
        "",
        "## Product Name",
        "",
        (product_name or "").strip() or "[Product name]",
        "",
        "---",
        "",
    ]

    for spec in section_table:
        text = sections.get(spec.number)
        if not text:
            continue
        parts.append(text)
        if not text.endswith("\n"):
            parts.append("")

    return "\n".join(parts)
