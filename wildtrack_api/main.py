import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import TelemetryAPIError
from .producer import Publisher, build_publisher
from .repository import TelemetryRepository, build_repository
from .routes import envelope, router
from .settings import Settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    publisher: Optional[Publisher] = None,
    repository: Optional[TelemetryRepository] = None,
) -> FastAPI:
    """
    Build the API. ``publisher`` and ``repository`` are created from settings
    at startup unless passed in; an injected publisher is not closed on
    shutdown.
    """
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_publisher = app.state.publisher is None
        if owns_publisher:
            app.state.publisher = await build_publisher(settings)
        logger.info(f"{settings.app_name} {settings.version} started env={settings.app_env} prefix={settings.api_prefix}")
        yield
        if owns_publisher:
            app.state.publisher.close()
            app.state.publisher = None
        logger.info("Shutdown complete")

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.publisher = publisher
    app.state.repository = repository or build_repository(settings.repository_backend, seed=settings.mock_seed)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else None
        logger.info(f"{request.method} {request.url.path} ip={client} ua={request.headers.get('user-agent')}")
        return await call_next(request)

    @app.exception_handler(TelemetryAPIError)
    async def telemetry_error_handler(request: Request, exc: TelemetryAPIError):
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, error=exc.message, details=exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [f'"{".".join(str(p) for p in err["loc"])}" {err["msg"]}' for err in exc.errors()]
        return JSONResponse(status_code=400, content=envelope(False, error="Validation failed", details=details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content=envelope(False, error="Endpoint not found", path=request.url.path))
        return JSONResponse(status_code=exc.status_code, content=envelope(False, error=str(exc.detail)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=envelope(
                False,
                error="Internal server error",
                message=str(exc) if settings.is_development else "Something went wrong",
            ),
        )

    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {
            "message": settings.app_name,
            "version": settings.version,
            "endpoints": {"telemetry": f"{settings.api_prefix}/telemetry", "metrics": "/metrics"},
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
