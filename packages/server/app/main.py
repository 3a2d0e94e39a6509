"""
CampusFace API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import router as api_v1_router
from app.core.config import get_settings
from app.core.database import engine
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.sync import close_redis, get_redis
from campusface_shared.schemas.common import ApiResponse

settings = get_settings()
log = structlog.get_logger()


def _envelope(status_code: int, message: str, data=None, headers=None) -> JSONResponse:
    body = ApiResponse(success=False, message=message, data=data)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure in the ApiResponse envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            log.warning("http.upstream_error", status=exc.status_code, detail=exc.detail)
        return _envelope(
            exc.status_code,
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _envelope(422, "Request validation failed", data=jsonable_encoder(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("http.unhandled_error", error_type=type(exc).__name__)
        return _envelope(500, "An unexpected error occurred")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="CampusFace",
        description="Campus access control: hubs, memberships, face photos and one-time entry codes.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return ApiResponse(success=True, message="ok", data={"status": "ok"})

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database must answer; Redis is reported but optional."""
        checks = {"database": "ok", "redis": "ok"}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            log.warning("ready.database_unavailable", error=str(exc))
            checks["database"] = "unavailable"
        try:
            client = await get_redis()
            await client.ping()
        except Exception as exc:
            log.warning("ready.redis_unavailable", error=str(exc))
            checks["redis"] = "unavailable"

        ready = checks["database"] == "ok"
        body = ApiResponse(
            success=ready, message="ready" if ready else "not ready", data=checks
        )
        return JSONResponse(status_code=200 if ready else 503, content=jsonable_encoder(body))

    @app.on_event("startup")
    async def on_startup():
        log.info("CampusFace starting", debug=settings.debug)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("CampusFace shutting down")
        await close_redis()

    return app


app = create_app()
