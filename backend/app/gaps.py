from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal, Mapping, Sequence, get_args

from pydantic import Field, StrictStr, field_validator

from app.schemas import CamelModel

BriefField = Literal["what", "who", "where", "moq", "must-have", "nice-to-have"]
BRIEF_FIELDS: tuple[str, ...] = get_args(BriefField)
GapPriority = Literal["high", "medium", "low"]


class Entity(CamelModel):
    type: StrictStr
    value: StrictStr
    confidence: float
    span: StrictStr | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_must_be_number(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be a number")
        return value


class Gap(CamelModel):
    id: str
    category: str
    description: str
    priority: GapPriority
    suggested_question: str
    example_answer: str | None = None


class GapDetectionInput(CamelModel):
    field_type: BriefField
    entities: list[Entity]
    bullet_points: list[StrictStr]


class GapDetectionResult(CamelModel):
    gaps: list[Gap] = Field(default_factory=list)
    field_type: BriefField
    completeness: float = Field(..., ge=0.0, le=1.0)
    product_type: str | None = None


@dataclass(frozen=True)
class ProductRule:
    field: str
    category: str
    question: str
    example: str


@dataclass(frozen=True)
class FieldRule:
    category: str
    question: str
    priority: GapPriority


@dataclass(frozen=True)
class GapRuleSet:
    products: Mapping[str, tuple[ProductRule, ...]]
    fields: Mapping[str, tuple[FieldRule, ...]]


PRODUCT_RULES: Mapping[str, tuple[ProductRule, ...]] = MappingProxyType(
    {
        "tablet stand": (
            ProductRule("what", "tablet_compatibility", "Which tablet sizes does it support?", '7", 10", 12.9" tablets'),
            ProductRule("what", "mounting_type", "How is it mounted?", "Countertop, wall-mounted, clamp-mounted"),
            ProductRule("what", "rotation", "Does it rotate? If so, how much?", "Fixed, 180°, 360° rotation"),
            ProductRule("what", "vesa", "Is it VESA compatible? Which pattern?", "VESA 75x75, 100x100"),
            ProductRule("where", "placement", "Where will it be used?", "Retail POS, reception desk, conference room"),
            ProductRule(
                "must-have",
                "security",
                "What security features are required?",
                "Lock, tamper-proof screws, cable lock slot",
            ),
        ),
        "display mount": (
            ProductRule("what", "display_size", "What display sizes does it support?", '24"-32", 32"-43", 43"-55"'),
            ProductRule("what", "vesa", "Which VESA patterns does it support?", "VESA 100x100, 200x200, 400x400"),
            ProductRule("what", "mounting_type", "How is it mounted?", "Wall, ceiling, desk clamp, pole-mounted"),
            ProductRule("what", "articulation", "What movement does it allow?", "Fixed, tilt, swivel, full-motion arm"),
            ProductRule(
                "where",
                "environment",
                "Indoor or outdoor? Any special conditions?",
                "Indoor office, outdoor (weatherproof), high-traffic area",
            ),
            ProductRule("must-have", "weight_capacity", "What is the weight capacity?", "Up to 25 lbs, 25-50 lbs, 50+ lbs"),
        ),
        "enclosure": (
            ProductRule("what", "device_type", "What device goes inside?", "iPad, Surface Pro, generic tablet, PC"),
            ProductRule("what", "access", "How do you access the device?", "Front-facing, rear access, sliding door"),
            ProductRule(
                "what",
                "security",
                "What security level is needed?",
                "Basic tamper-resistant, high-security lock, anti-theft",
            ),
            ProductRule(
                "what",
                "cable_management",
                "How are cables managed?",
                "Internal routing, external clips, cable grommet",
            ),
            ProductRule("where", "mounting", "How is the enclosure mounted?", "Wall, desk, VESA, freestanding"),
            ProductRule("must-have", "ports", "Which ports need access?", "USB, power, headphone jack, charging port"),
        ),
        "kiosk": (
            ProductRule("what", "display_size", "What is the display size?", '15", 22", 27", 32"'),
            ProductRule("what", "peripherals", "What peripherals are included?", "Printer, scanner, card reader, camera"),
            ProductRule("what", "form_factor", "What is the form factor?", "Floor-standing, countertop, wall-mounted"),
            ProductRule("where", "environment", "Where will it be deployed?", "Indoor retail, outdoor, healthcare, banking"),
            ProductRule("where", "accessibility", "Does it need ADA compliance?", "Yes (specify height range), No"),
            ProductRule("must-have", "power", "What are the power requirements?", "Standard 110V, PoE, battery backup"),
        ),
    }
)

FIELD_RULES: Mapping[str, tuple[FieldRule, ...]] = MappingProxyType(
    {
        "what": (
            FieldRule("dimensions", "What are the physical dimensions?", "high"),
            FieldRule("weight", "What is the weight?", "medium"),
            FieldRule("materials", "What materials is it made from?", "medium"),
            FieldRule("color_finish", "What colors/finishes are available?", "low"),
        ),
        "who": (
            FieldRule("target_user", "Who is the primary user?", "high"),
            FieldRule("industry", "Which industries/verticals?", "high"),
            FieldRule("use_case", "What are the main use cases?", "medium"),
            FieldRule("pain_point", "What problem does it solve?", "medium"),
        ),
        "where": (
            FieldRule("location_type", "Where will it be installed?", "high"),
            FieldRule("environment", "What are the environmental conditions?", "medium"),
            FieldRule("mounting", "How/where is it mounted?", "high"),
        ),
        "moq": (
            FieldRule("quantity", "What is the minimum order quantity?", "high"),
            FieldRule("volume_tiers", "Are there volume pricing tiers?", "medium"),
        ),
        "must-have": (
            FieldRule("critical_features", "What features are absolutely required?", "high"),
            FieldRule("compliance", "Any required certifications or standards?", "high"),
            FieldRule("performance", "What are the performance requirements?", "medium"),
        ),
        "nice-to-have": (
            FieldRule("optional_features", "What optional features would be nice?", "low"),
            FieldRule("future_upgrades", "Any future upgrade possibilities?", "low"),
        ),
    }
)

DEFAULT_RULES = GapRuleSet(products=PRODUCT_RULES, fields=FIELD_RULES)


def _category_phrase(category: str) -> str:
    # Only the first underscore becomes a space ("cable_management" -> "cable management").
    return category.lower().replace("_", " ", 1)


class GapDetector:
    def __init__(self, rules: GapRuleSet = DEFAULT_RULES) -> None:
        self._rules = rules

    def detect(
        self,
        field_type: str,
        entities: Sequence[Entity],
        bullet_points: Sequence[str],
    ) -> GapDetectionResult:
        product_type = self.detect_product_type(entities, bullet_points)

        gaps: list[Gap] = []
        if product_type is not None:
            gaps.extend(self._check_product_rules(product_type, field_type, entities, bullet_points))
        gaps.extend(self._check_field_rules(field_type, entities, bullet_points))

        return GapDetectionResult(
            gaps=gaps,
            field_type=field_type,
            completeness=self.completeness(gaps, entities, bullet_points),
            product_type=product_type,
        )

    def detect_product_type(self, entities: Sequence[Entity], bullet_points: Sequence[str]) -> str | None:
        bullet_text = " ".join(bullet_points).lower()
        for product_type in self._rules.products:
            if product_type in bullet_text:
                return product_type

        for entity in entities:
            value = entity.value.lower()
            for product_type in self._rules.products:
                if product_type in value:
                    return product_type
        return None

    def _check_product_rules(
        self,
        product_type: str,
        field_type: str,
        entities: Sequence[Entity],
        bullet_points: Sequence[str],
    ) -> list[Gap]:
        gaps: list[Gap] = []
        for rule in self._rules.products.get(product_type, ()):
            if rule.field != field_type:
                continue
            if self.has_category(rule.category, entities, bullet_points):
                continue
            gaps.append(
                Gap(
                    id=f"{field_type}-{rule.category}",
                    category=rule.category,
                    description=f"Missing {rule.category.replace('_', ' ', 1)} information",
                    priority="high",
                    suggested_question=rule.question,
                    example_answer=rule.example,
                )
            )
        return gaps

    def _check_field_rules(
        self,
        field_type: str,
        entities: Sequence[Entity],
        bullet_points: Sequence[str],
    ) -> list[Gap]:
        gaps: list[Gap] = []
        for rule in self._rules.fields.get(field_type, ()):
            if self.has_category(rule.category, entities, bullet_points):
                continue
            gaps.append(
                Gap(
                    id=f"{field_type}-{rule.category}",
                    category=rule.category,
                    description=f"Missing {rule.category.replace('_', ' ', 1)} information",
                    priority=rule.priority,
                    suggested_question=rule.question,
                )
            )
        return gaps

    @staticmethod
    def has_category(category: str, entities: Sequence[Entity], bullet_points: Sequence[str]) -> bool:
        lowered = category.lower()
        if any(lowered in entity.type.lower() for entity in entities):
            return True
        return _category_phrase(category) in " ".join(bullet_points).lower()

    @staticmethod
    def completeness(gaps: Sequence[Gap], entities: Sequence[Entity], bullet_points: Sequence[str]) -> float:
        bullet_score = min(len(bullet_points) / 3, 1.0) * 0.4
        entity_score = min(len(entities) / 2, 1.0) * 0.3
        high_priority = sum(1 for gap in gaps if gap.priority == "high")
        gap_score = 0.3 - min(high_priority * 0.15, 0.3)
        return max(0.0, min(1.0, bullet_score + entity_score + gap_score))


def detect_gaps(
    field_type: str,
    entities: Sequence[Entity | dict[str, object]],
    bullet_points: Sequence[str],
    *,
    rules: GapRuleSet = DEFAULT_RULES,
) -> GapDetectionResult:
    normalized = [entity if isinstance(entity, Entity) else Entity.model_validate(entity) for entity in entities]
    return GapDetector(rules).detect(field_type, normalized, list(bullet_points))
