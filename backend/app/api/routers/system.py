from __future__ import annotations

import importlib.util

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config import Settings, settings
from app.ensemble import MERGE_STRATEGIES
from app.version import APP_VERSION

router = APIRouter()

GENERATION_BACKENDS = {"template", "bedrock"}
EXTRACTION_BACKENDS = {"deterministic", "bedrock"}


def _config_check(config: Settings) -> dict[str, object]:
    problems: list[str] = []
    if config.generation_backend not in GENERATION_BACKENDS:
        problems.append(f"unsupported generation backend '{config.generation_backend}'")
    if config.extraction_backend not in EXTRACTION_BACKENDS:
        problems.append(f"unsupported extraction backend '{config.extraction_backend}'")
    if config.ensemble_default_strategy not in MERGE_STRATEGIES:
        problems.append(f"unsupported merge strategy '{config.ensemble_default_strategy}'")
    if not 1 <= config.ensemble_max_generations <= 10:
        problems.append("ensemble_max_generations must be between 1 and 10")

    check: dict[str, object] = {
        "ok": not problems,
        "generation_backend": config.generation_backend,
        "extraction_backend": config.extraction_backend,
    }
    if problems:
        check["error"] = "; ".join(problems)
    return check


def _llm_check(config: Settings) -> dict[str, object]:
    if "bedrock" not in {config.generation_backend, config.extraction_backend}:
        return {"ok": True, "backend": "none"}
    if importlib.util.find_spec("boto3") is None:
        return {"ok": False, "backend": "bedrock", "error": "boto3 is not installed"}
    if not config.bedrock_model_id or not config.bedrock_lite_model_id:
        return {"ok": False, "backend": "bedrock", "error": "Bedrock model IDs are not configured"}
    return {"ok": True, "backend": "bedrock", "region": config.aws_region}


@router.get("/")
def root() -> dict[str, str]:
    return {"service": "mrd-backend", "status": "running", "version": APP_VERSION}


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "environment": settings.app_env}


@router.get("/ready", response_model=None)
def ready() -> JSONResponse:
    checks = {"config": _config_check(settings), "llm": _llm_check(settings)}
    ok = all(bool(check["ok"]) for check in checks.values())
    payload = {
        "status": "ready" if ok else "not_ready",
        "environment": settings.app_env,
        "checks": checks,
    }
    return JSONResponse(status_code=200 if ok else 503, content=payload)
