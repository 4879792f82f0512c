from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trendpulse.api.dependencies import get_persistence_queue
from trendpulse.api.routes.ingest import router as ingest_router
from trendpulse.api.routes.research import router as research_router
from trendpulse.api.routes.system import router as system_router
from trendpulse.core.config import get_settings
from trendpulse.core.exceptions import PersistenceError, ValidationError
from trendpulse.core.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def app_lifespan(_: FastAPI):
    settings = get_settings()
    queue = get_persistence_queue()
    queue.start()
    logger.info("Persistence worker started")

    yield

    await queue.stop(timeout=settings.PERSISTENCE_DRAIN_SECONDS)
    logger.info("Persistence worker stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    application = FastAPI(
        title="TrendPulse",
        version="1.0",
        lifespan=app_lifespan,
    )

    allowed_origins_set = {
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    }
    if settings.CORS_ORIGINS:
        allowed_origins_set.update(str(origin).rstrip("/") for origin in settings.CORS_ORIGINS)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(allowed_origins_set),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(research_router)
    application.include_router(system_router)
    application.include_router(ingest_router)

    @application.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info("Rejected request at %s: %s", request.url.path, exc,
                    extra={"path": request.url.path, "error_kind": exc.kind.value})
        return JSONResponse(status_code=422, content={"status": "error", "msg": str(exc)})

    @application.exception_handler(PersistenceError)
    async def persistence_exception_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Storage failure at %s: %s", request.url.path, exc,
                     extra={"path": request.url.path, "error_kind": exc.kind.value})
        return JSONResponse(status_code=503, content={"status": "error", "msg": "Storage is temporarily unavailable."})

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception at %s", request.url.path, exc_info=True, extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "msg": "An internal system error occurred. Please check server logs.",
            },
        )

    @application.get("/")
    def read_root() -> dict[str, str]:
        return {"status": "System Operational", "message": "TrendPulse backend is running"}

    return application


app = create_app()
