from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Iterator, Mapping
from uuid import uuid4


REQUEST_ID_CONTEXT: ContextVar[str] = ContextVar("request_id", default="-")
AGENT_ID_CONTEXT: ContextVar[str] = ContextVar("agent_id", default="-")
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_LOGGING_CONFIGURED = False

SENSITIVE_KEY_NAMES = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "email",
        "phone",
        "ssn",
        "social_security_number",
    }
)
SENSITIVE_KEY_FRAGMENTS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "access_key",
    "private_key",
    "credential",
    "signature",
)

# Applied in order; later rules see the output of earlier ones.
REDACTION_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)\bBearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer [REDACTED]"),
    (re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"), "[REDACTED_AWS_ACCESS_KEY]"),
    (
        re.compile(r"(?i)\b(aws_secret_access_key|secret_access_key|aws_session_token)(\s*[:=]\s*)([A-Za-z0-9/+=]{16,})"),
        r"\1\2[REDACTED]",
    ),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[REDACTED_EMAIL]"),
    (re.compile(r"\b(?:\+?1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)\d{3}[-.\s]?\d{4}\b"), "[REDACTED_PHONE]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[REDACTED_SSN]"),
)


def normalize_request_id(candidate: str | None) -> str:
    if candidate:
        trimmed = candidate.strip()
        if REQUEST_ID_PATTERN.fullmatch(trimmed):
            return trimmed
    return str(uuid4())


def get_request_id() -> str:
    return REQUEST_ID_CONTEXT.get()


def get_agent_id() -> str:
    return AGENT_ID_CONTEXT.get()


@contextmanager
def request_scope(request_id: str) -> Iterator[str]:
    token = REQUEST_ID_CONTEXT.set(request_id)
    try:
        yield request_id
    finally:
        REQUEST_ID_CONTEXT.reset(token)


@contextmanager
def agent_scope(agent_id: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``agent_id``."""
    token = AGENT_ID_CONTEXT.set(agent_id)
    try:
        yield
    finally:
        AGENT_ID_CONTEXT.reset(token)


def _looks_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    if normalized in SENSITIVE_KEY_NAMES:
        return True
    normalized = normalized.replace("-", "_")
    return any(fragment in normalized for fragment in SENSITIVE_KEY_FRAGMENTS)


def redact_text(value: str, *, max_length: int = 240) -> str:
    redacted = value
    for pattern, replacement in REDACTION_RULES:
        redacted = pattern.sub(replacement, redacted)
    if len(redacted) > max_length:
        return f"{redacted[:max_length]}...[truncated]"
    return redacted


def sanitize_for_logging(value: Any, *, max_string_length: int = 240) -> Any:
    """Redact secrets and contact details from a structured log value.

    Mappings are walked recursively and values under sensitive keys are
    replaced wholesale; free text is scrubbed with ``REDACTION_RULES`` and
    truncated.
    """
    if value is None:
        return None

    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for key, item in value.items():
            key_text = str(key)
            if _looks_sensitive_key(key_text):
                sanitized[key_text] = "[REDACTED]"
                continue
            sanitized[key_text] = sanitize_for_logging(item, max_string_length=max_string_length)
        return sanitized

    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_logging(item, max_string_length=max_string_length) for item in value]

    if isinstance(value, bytes):
        return f"[{len(value)} bytes]"

    if isinstance(value, str):
        return redact_text(value, max_length=max_string_length)

    return value


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        if not hasattr(record, "agent_id"):
            record.agent_id = get_agent_id()
        return True


_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys() | {"message", "asctime", "taskName"}
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", get_request_id()),
            "agent_id": getattr(record, "agent_id", get_agent_id()),
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS and key not in payload
        }
        payload.update(sanitize_for_logging(extras))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(level_name: str) -> None:
    global _LOGGING_CONFIGURED
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if _LOGGING_CONFIGURED:
        return

    if any(getattr(handler, "_mrd_handler", False) for handler in root.handlers):
        _LOGGING_CONFIGURED = True
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())
    setattr(handler, "_mrd_handler", True)
    root.addHandler(handler)
    _LOGGING_CONFIGURED = True
