import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.core.config import settings, validate_settings_for_production
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.sentry import init_sentry
from app.metadata.service import GenerationService

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    init_sentry()
    logger.info("Starting Movie Platform AI gateway...")

    service = GenerationService.from_settings(settings)
    service.store.start()
    app.state.generation_service = service
    logger.info("Backend roster: %s", ", ".join(service.orchestrator.roster.ids))

    yield

    # Shutdown
    await service.store.stop()
    logger.info("Movie Platform AI gateway shut down")


app = FastAPI(
    title="Movie Platform AI",
    description="AI-assisted movie metadata generation for the catalog admin",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed body on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": "Movie title is required"})


# Log unhandled exceptions; the client only gets a generic message
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": "AI generation failed. Please try again."})


app.add_middleware(PrometheusMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/api/health")
async def health(request: Request):
    service: GenerationService | None = getattr(request.app.state, "generation_service", None)
    if service is None:
        return {"status": "starting"}
    return {
        "status": "ok",
        "rate_limiter": service.store.get_stats(),
        "backends": service.orchestrator.get_status(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
