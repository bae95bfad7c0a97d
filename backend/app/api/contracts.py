from __future__ import annotations

from typing import Callable, TypedDict

from app.llm_runtime import BedrockMrdRuntime

LlmRuntimeGetter = Callable[[], BedrockMrdRuntime]


class ErrorDetail(TypedDict):
    message: str
    errors: list[str]


VALIDATION_FAILED = "Validation failed"
PROCESSING_FAILED = "Processing failed"
