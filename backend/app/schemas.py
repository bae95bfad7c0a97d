from __future__ import annotations

import math
from typing import Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

ModelT = TypeVar("ModelT", bound=BaseModel)


class CamelModel(BaseModel):
    """Snake_case attributes in Python, camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_validation_errors(err: ValidationError) -> list[str]:
    messages: list[str] = []
    for issue in err.errors():
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message = str(issue.get("msg", "invalid value"))
        messages.append(f"{location}: {message}" if location else message)
    return messages


def validate_payload(model: type[ModelT], payload: object) -> tuple[ModelT | None, list[str]]:
    if isinstance(payload, model):
        return payload, []
    if not isinstance(payload, Mapping):
        return None, ["Input must be a non-null object"]
    try:
        return model.model_validate(dict(payload)), []
    except ValidationError as err:
        return None, format_validation_errors(err)
