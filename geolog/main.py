"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging
import time

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from geolog.dependencies import settings
from geolog.routers import visitor
from geolog.services.client_info import get_client_ip
from geolog.services.confidence_radius import InvalidPolygonError

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Status codes with a dedicated machine-readable code; others get HTTP_<status>
ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    502: "UPSTREAM_ERROR",
    503: "SERVICE_UNAVAILABLE",
    504: "UPSTREAM_TIMEOUT",
}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its client address, status and duration."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        context = {
            "request_id": id(request),
            "method": request.method,
            "path": request.url.path,
            "client_ip": get_client_ip(request),
        }
        logger.info(f"--> {request.method} {request.url.path}", extra=context)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"<-- {request.method} {request.url.path} failed",
                exc_info=True,
                extra={
                    **context,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "error_type": type(exc).__name__,
                }
            )
            raise

        logger.info(
            f"<-- {request.method} {request.url.path} {response.status_code}",
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Report configuration gaps at startup."""
    logger.info(f"Starting {settings.app_name} (debug={settings.debug})")
    if not settings.has_api_key:
        logger.warning("BIGDATACLOUD_API_KEY not set; visitor reports will lack geolocation data")
    if not settings.discord_webhook_url:
        logger.warning("DISCORD_WEBHOOK_URL not set; notifications disabled")

    yield

    logger.info(f"Stopping {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    description="""
    Visitor Geolog API

    Records visitors by IP address and user-agent:

    * **Geolocation**: Location, network and threat data from BigDataCloud
    * **Accuracy Radius**: Estimated from the provider's confidence polygon
    * **Notifications**: Visitor summaries posted to a Discord webhook
    * **Debugging**: Verbose server-side lookup logging

    Errors are returned as JSON with a human-readable `detail` and a
    machine-readable `error_code`.
    """,
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "visitor",
            "description": "Visitor logging and IP debugging.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_middleware(LoggingMiddleware)

app.include_router(visitor.router, tags=["visitor"])


@app.get("/")
async def root() -> dict:
    """Service name, version and docs location."""
    return {
        "name": settings.app_name,
        "version": VERSION,
        "status": "operational",
        "docs": "/api/docs"
    }


@app.get("/health")
async def health_check() -> dict:
    """Liveness probe."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "geolocation_configured": settings.has_api_key,
        "notifications_enabled": bool(settings.discord_webhook_url),
    }


@app.exception_handler(InvalidPolygonError)
async def invalid_polygon_handler(request: Request, exc: InvalidPolygonError) -> JSONResponse:
    """Polygon errors are normally absorbed by the report builder; this catches any that escape."""
    logger.warning(f"Invalid confidence polygon on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=422,
        content={"detail": "Invalid confidence area", "error_code": "INVALID_POLYGON"}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPExceptions with an error code."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
        },
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; exception details are only exposed in debug mode."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=True)

    content = {"detail": "Internal server error", "error_code": "INTERNAL_ERROR"}
    if settings.debug:
        content["error_type"] = type(exc).__name__
        content["error_message"] = str(exc)

    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "geolog.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
