from contextlib import asynccontextmanager
from functools import lru_cache
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.brief import build_brief_router
from app.api.routers.ensemble import build_ensemble_router
from app.api.routers.quality import build_quality_router
from app.api.routers.system import router as system_router
from app.config import settings
from app.llm_runtime import BedrockMrdRuntime
from app.observability import (
    configure_logging,
    normalize_request_id,
    request_scope,
    sanitize_for_logging,
)
from app.version import APP_VERSION

logger = logging.getLogger("mrd.api")


@lru_cache(maxsize=1)
def _cached_llm_runtime() -> BedrockMrdRuntime:
    return BedrockMrdRuntime(settings=settings)


def get_llm_runtime() -> BedrockMrdRuntime:
    return _cached_llm_runtime()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    logger.info(
        "application_startup",
        extra={
            "event": "application_startup",
            "environment": settings.app_env,
            "generation_backend": settings.generation_backend,
            "extraction_backend": settings.extraction_backend,
        },
    )
    yield
    logger.info("application_shutdown", extra={"event": "application_shutdown"})


def create_app() -> FastAPI:
    cors_origins = settings.cors_origins_list
    if settings.cors_allow_credentials and any(origin == "*" for origin in cors_origins):
        raise RuntimeError("Invalid CORS_ORIGINS: wildcard '*' is not allowed when credentials are enabled.")

    app = FastAPI(title=settings.app_name, version=APP_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", settings.request_id_header],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = normalize_request_id(request.headers.get(settings.request_id_header))
        request.state.request_id = request_id
        with request_scope(request_id):
            return await _handle_request(request, call_next, request_id)

    async def _handle_request(request: Request, call_next, request_id: str):
        started = time.perf_counter()

        logger.info(
            "request_started",
            extra={
                "event": "request_started",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": sanitize_for_logging(dict(request.query_params)),
                "client_ip": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[settings.request_id_header] = request_id
            logger.info(
                "request_completed",
                extra={
                    "event": "request_completed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
            return response
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.exception(
                "request_failed",
                extra={
                    "event": "request_failed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": elapsed_ms,
                },
            )
            raise

    app.include_router(system_router)
    app.include_router(build_quality_router())
    app.include_router(build_ensemble_router(get_llm_runtime=lambda: get_llm_runtime()))
    app.include_router(build_brief_router(get_llm_runtime=lambda: get_llm_runtime()))
    return app


app = create_app()
