from __future__ import annotations

from dataclasses import dataclass
import re
from types import MappingProxyType
from typing import Literal, Mapping, Sequence

from pydantic import Field, StrictStr, field_validator

from app.gaps import BRIEF_FIELDS, BriefField, Entity, PRODUCT_RULES
from app.schemas import CamelModel

MAX_BULLET_POINTS = 20
MAX_ENTITIES = 50
DETERMINISTIC_ENTITY_CONFIDENCE = 0.6

ExtractionMode = Literal["deterministic", "bedrock"]

FIELD_FOCUS: Mapping[str, str] = MappingProxyType(
    {
        "what": (
            "You are extracting PRODUCT DESCRIPTION information. Focus on product type and category, "
            "physical attributes (size, weight, materials), key features, technical specifications and "
            "standards compliance (VESA, USB, etc.)."
        ),
        "who": (
            "You are extracting TARGET USER/CUSTOMER information. Focus on user personas and roles, "
            "customer segments, industries and verticals, use cases and user pain points."
        ),
        "where": (
            "You are extracting USE ENVIRONMENT information. Focus on physical locations, environmental "
            "conditions, mounting locations, space constraints and proximity to other equipment."
        ),
        "moq": (
            "You are extracting MINIMUM ORDER QUANTITY information. Focus on quantity requirements, "
            "order size expectations, volume ranges, pricing tiers and bulk order details."
        ),
        "must-have": (
            "You are extracting MUST-HAVE FEATURES (non-negotiable requirements). Focus on critical "
            "features, mandatory capabilities, required specifications and compliance requirements."
        ),
        "nice-to-have": (
            "You are extracting NICE-TO-HAVE FEATURES (optional enhancements). Focus on optional "
            "features, enhancement ideas, future possibilities and upgrade options."
        ),
    }
)

EXPECTED_ENTITY_TYPES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "what": ("dimension", "material", "product_type", "feature", "standard", "specification"),
        "who": ("persona", "industry", "role", "use_case", "pain_point", "customer_segment"),
        "where": ("location_type", "mounting", "environment", "condition", "constraint", "placement"),
        "moq": ("quantity", "volume", "tier", "range", "requirement"),
        "must-have": ("feature", "requirement", "specification", "standard", "capability", "constraint"),
        "nice-to-have": ("feature", "enhancement", "option", "upgrade", "capability"),
    }
)


@dataclass(frozen=True)
class EntityRule:
    entity_type: str
    pattern: re.Pattern[str]


def _rule(entity_type: str, expression: str) -> EntityRule:
    return EntityRule(entity_type, re.compile(expression, flags=re.IGNORECASE))


_PRODUCT_EXPRESSION = "|".join(re.escape(name) for name in PRODUCT_RULES)
_MEASUREMENT = r"\b\d+(?:\.\d+)?(?:\s*(?:x|×)\s*\d+(?:\.\d+)?)*\s*(?:mm|cm|inches|inch|ft\b|\")"
_STANDARDS = r"\b(?:VESA(?:\s*\d+\s*x\s*\d+)?|ADA|ANSI|BIFMA|UL\s*\d*|CE|USB(?:-C)?|IP\d{2})\b"
_FEATURES = (
    r"\b(?:lock(?:ing|able)?|cable management|rotat(?:e|ion|ing)|swivel|tilt|height[- ]adjustable|adjustable"
    r"|charging|anti[- ]theft|tamper[- ]proof|tamper[- ]resistant|quick[- ]release)\b"
)

DETERMINISTIC_RULES: Mapping[str, tuple[EntityRule, ...]] = MappingProxyType(
    {
        "what": (
            _rule("product_type", _PRODUCT_EXPRESSION),
            _rule("dimensions", _MEASUREMENT),
            _rule("weight_specification", r"\b\d+(?:\.\d+)?\s*(?:kg|lbs?|oz|g)\b"),
            _rule(
                "materials",
                r"\b(?:stainless steel|steel|aluminum|aluminium|plastic|ABS|polycarbonate|wood|glass|acrylic|silicone)\b",
            ),
            _rule("standard", _STANDARDS),
            _rule("feature", _FEATURES),
        ),
        "who": (
            _rule(
                "industry",
                r"\b(?:retail|healthcare|hospitality|education|banking|restaurants?|logistics|manufacturing|corporate)\b",
            ),
            _rule(
                "persona",
                r"\b(?:cashiers?|staff|employees|customers|patients|guests|students|nurses|managers|visitors|shoppers)\b",
            ),
        ),
        "where": (
            _rule(
                "location_type",
                r"\b(?:retail stores?|stores?|offices?|reception|lobby|lobbies|warehouses?|kitchens?|hospitals?|restaurants?)\b",
            ),
            _rule("mounting", r"\b(?:wall[- ]mounted|countertop|ceiling|desk|pole[- ]mounted|floor[- ]standing|freestanding)\b"),
            _rule("environment", r"\b(?:outdoor|indoor|high[- ]traffic|humid(?:ity)?|weatherproof|dusty)\b"),
        ),
        "moq": (
            _rule("quantity", r"\b\d[\d,]*\s*(?:units?|pcs|pieces)\b"),
            _rule("tier", r"\b(?:volume tiers?|pricing tiers?|tiered pricing)\b"),
        ),
        "must-have": (
            _rule("standard", _STANDARDS),
            _rule("feature", _FEATURES),
        ),
        "nice-to-have": (
            _rule("feature", _FEATURES),
            _rule("upgrade", r"\b(?:upgrades?|add-ons?|accessor(?:y|ies))\b"),
        ),
    }
)

_BULLET_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?;])\s+")


class TextExtractionInput(CamelModel):
    field_type: BriefField
    free_text: StrictStr

    @field_validator("free_text")
    @classmethod
    def free_text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("freeText cannot be empty or whitespace only")
        return value


class ExtractionResult(CamelModel):
    bullet_points: list[str] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    field_type: BriefField
    mode: ExtractionMode


def extraction_confidence(bullet_points: Sequence[str], entities: Sequence[Entity]) -> float:
    score = min(len(bullet_points) / 5, 1.0) * 0.5
    score += min(len(entities) / 3, 1.0) * 0.25
    if entities:
        score += sum(entity.confidence for entity in entities) / len(entities) * 0.25
    return max(0.0, min(1.0, score))


def _accepts_entity_type(entity_type: str, field_type: str) -> bool:
    expected = EXPECTED_ENTITY_TYPES.get(field_type, ())
    lowered = entity_type.lower()
    return entity_type in expected or any(item.lower() in lowered for item in expected)


def normalize_extraction_payload(
    payload: Mapping[str, object],
    field_type: str,
    *,
    mode: ExtractionMode = "bedrock",
) -> ExtractionResult:
    """Keep only well-formed bullets and entities from a model response."""
    raw_bullets = payload.get("bulletPoints", payload.get("bullet_points"))
    bullets: list[str] = []
    if isinstance(raw_bullets, list):
        bullets = [item.strip() for item in raw_bullets if isinstance(item, str) and item.strip()]
    bullets = bullets[:MAX_BULLET_POINTS]

    entities: list[Entity] = []
    raw_entities = payload.get("entities")
    if isinstance(raw_entities, list):
        for item in raw_entities:
            if not isinstance(item, Mapping):
                continue
            entity_type = item.get("type")
            value = item.get("value")
            confidence = item.get("confidence")
            if not isinstance(entity_type, str) or not isinstance(value, str):
                continue
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                continue
            if not 0 <= confidence <= 1:
                continue
            if not _accepts_entity_type(entity_type, field_type):
                continue
            span = item.get("span")
            entities.append(
                Entity(
                    type=entity_type,
                    value=value,
                    confidence=float(confidence),
                    span=span if isinstance(span, str) and span else None,
                )
            )
    entities = entities[:MAX_ENTITIES]

    return ExtractionResult(
        bullet_points=bullets,
        entities=entities,
        confidence=extraction_confidence(bullets, entities),
        field_type=field_type,
        mode=mode,
    )


def split_bullet_points(free_text: str) -> list[str]:
    bullets: list[str] = []
    seen: set[str] = set()
    for line in free_text.splitlines():
        line = _BULLET_MARKER.sub("", line).strip()
        if not line:
            continue
        for sentence in _SENTENCE_BREAK.split(line):
            text = sentence.strip().rstrip(".;").strip()
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            bullets.append(text)
    return bullets[:MAX_BULLET_POINTS]


def extract_entities(
    free_text: str,
    field_type: str,
    *,
    rules: Mapping[str, tuple[EntityRule, ...]] = DETERMINISTIC_RULES,
) -> list[Entity]:
    entities: list[Entity] = []
    seen: set[tuple[str, str]] = set()
    for rule in rules.get(field_type, ()):
        for match in rule.pattern.finditer(free_text):
            span = match.group(0).strip()
            value = " ".join(span.split()).lower()
            key = (rule.entity_type, value)
            if key in seen:
                continue
            seen.add(key)
            entities.append(
                Entity(
                    type=rule.entity_type,
                    value=value,
                    confidence=DETERMINISTIC_ENTITY_CONFIDENCE,
                    span=span,
                )
            )
    return entities[:MAX_ENTITIES]


def extract_deterministic(field_type: str, free_text: str) -> ExtractionResult:
    if field_type not in BRIEF_FIELDS:
        raise ValueError(f"fieldType must be one of: {', '.join(BRIEF_FIELDS)}")
    bullets = split_bullet_points(free_text)
    entities = extract_entities(free_text, field_type)
    return ExtractionResult(
        bullet_points=bullets,
        entities=entities,
        confidence=extraction_confidence(bullets, entities),
        field_type=field_type,
        mode="deterministic",
    )
