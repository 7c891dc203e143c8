"""
FastAPI application for the availability engine

Slot computation and booking writes happen in the request; event fan-out
runs in Celery workers
"""
import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from availability_engine.api.v1.router import api_v1_router
from availability_engine.config.redis import close_redis_pool
from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import AvailabilityEngineError, ValidationError
from availability_engine.core.middleware import correlation_id_middleware, request_logging_middleware
from availability_engine.core.monitoring import health_router
from availability_engine.utils.my_logging import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(verbose=settings.DEBUG)
    logger.info(f"{settings.APP_NAME} starting up, API at /api/v1, health at /health")
    yield
    await close_redis_pool()
    logger.info(f"{settings.APP_NAME} shutting down")


async def availability_error_handler(request: Request, exc: AvailabilityEngineError):
    """Render domain errors as {"error": {...}} with their HTTP status"""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} ({exc.message})")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = ValidationError(details={"errors": jsonable_encoder(exc.errors())})
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": AvailabilityEngineError().to_dict()},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Availability computation and conflict-free booking for service businesses",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "PUT"],
        allow_headers=["*"],
    )

    # Custom middleware
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(AvailabilityEngineError, availability_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "api": "/api/v1",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "availability_engine.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
