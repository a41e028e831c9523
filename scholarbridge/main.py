from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, status as http_status
from fastapi.responses import JSONResponse
from starlette.requests import Request

from scholarbridge.api.router import api_router
from scholarbridge.core.config import get_settings
from scholarbridge.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from scholarbridge.jobs.fetch_cycle import get_fetch_cycle_controller
from scholarbridge.services.providers.registry import ProviderConfig
from scholarbridge.services.repository import RepositoryUnavailableError, get_repository

settings = get_settings()
logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/healthz", "/readyz"})


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    telemetry_runtime = setup_telemetry(settings, component="api")
    repository = get_repository()
    provider_config = ProviderConfig.from_settings(settings)
    try:
        await repository.ensure_schema()
        logger.info(
            "scholarbridge api ready environment=%s storage=%s provider=%s provider_configured=%s",
            settings.environment,
            repository.backend,
            provider_config.provider,
            provider_config.has_key(provider_config.provider),
        )
        yield
    finally:
        shutdown_telemetry(telemetry_runtime)
        await repository.close()
        get_repository.cache_clear()
        # The controller holds the repository; drop both together.
        get_fetch_cycle_controller.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(RepositoryUnavailableError)
async def repository_unavailable_handler(request: Request, exc: RepositoryUnavailableError) -> JSONResponse:
    logger.error("storage unavailable method=%s path=%s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
    logger.log(
        level,
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
