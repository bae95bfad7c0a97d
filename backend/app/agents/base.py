from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Generic, Mapping, TypeVar

from pydantic import BaseModel

from app.observability import agent_scope
from app.schemas import validate_payload

logger = logging.getLogger("mrd.agents")

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT")


@dataclass
class AgentResult(Generic[OutputT]):
    success: bool
    data: OutputT | None = None
    error: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseAgent(Generic[InputT, OutputT]):
    """Validate a payload, run the agent's computation and wrap the outcome.

    Subclasses set ``id``, ``name``, ``version`` and ``input_model`` and
    implement ``execute_core``. ``check_payload`` sees the raw mapping before
    model validation; ``extra_validation`` sees the parsed model.
    """

    id: str = "base-agent"
    name: str = "Base Agent"
    version: str = "1.0.0"
    description: str = ""
    input_model: type[InputT]

    def validate_input(self, payload: object) -> tuple[InputT | None, list[str]]:
        if isinstance(payload, Mapping):
            errors = self.check_payload(payload)
            if errors:
                return None, errors
        parsed, errors = validate_payload(self.input_model, payload)
        if parsed is None:
            return None, errors
        extra = self.extra_validation(parsed)
        if extra:
            return None, extra
        return parsed, []

    def check_payload(self, payload: Mapping[str, Any]) -> list[str]:
        return []

    def extra_validation(self, parsed: InputT) -> list[str]:
        return []

    def execute(self, payload: object) -> AgentResult[OutputT]:
        with agent_scope(self.id):
            started = time.perf_counter()
            logger.info("agent_started", extra={"event": "agent_started", "agent_version": self.version})

            parsed, errors = self.validate_input(payload)
            if parsed is None:
                logger.warning(
                    "agent_validation_failed",
                    extra={"event": "agent_validation_failed", "errors": errors},
                )
                return AgentResult(
                    success=False,
                    error="Validation failed",
                    errors=errors,
                    metadata=self._metadata(started),
                )

            warnings: list[str] = []
            try:
                data = self.execute_core(parsed, warnings)
            except Exception as exc:
                logger.exception(
                    "agent_failed",
                    extra={"event": "agent_failed", "error": str(exc)},
                )
                return AgentResult(
                    success=False,
                    error=str(exc) or exc.__class__.__name__,
                    warnings=warnings,
                    metadata=self._metadata(started),
                )

            metadata = self._metadata(started)
            logger.info(
                "agent_completed",
                extra={
                    "event": "agent_completed",
                    "duration_ms": metadata["duration_ms"],
                    "warning_count": len(warnings),
                },
            )
            return AgentResult(success=True, data=data, warnings=warnings, metadata=metadata)

    def execute_core(self, parsed: InputT, warnings: list[str]) -> OutputT:
        raise NotImplementedError

    def _metadata(self, started: float) -> dict[str, Any]:
        return {
            "agent_id": self.id,
            "agent_version": self.version,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }
