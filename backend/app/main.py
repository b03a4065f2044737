"""
Joinery BOM - Main FastAPI Application
"""
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1 import router as api_v1_router
from app.core.settings import settings
from app.exceptions import JoineryException
from app.logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


# ===================
# Request Middleware
# ===================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an id, log its outcome and add security headers.

    A caller-supplied X-Request-ID is echoed back so gateway and service
    logs can be joined.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            "%s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "request_id": request_id,
                "user_id": request.headers.get("X-User-Id"),
                "duration_ms": elapsed_ms,
            },
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def init_database():
    """Create missing tables on startup. Migrations own schema changes."""
    from app.db.session import engine
    from app.db.base import Base
    import app.models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        raise
    logger.info("Database tables ready", extra={"tables": sorted(Base.metadata.tables)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting Joinery BOM API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "max_bom_depth": settings.BOM_MAX_DEPTH,
        }
    )
    init_database()
    yield
    logger.info("Shutting down Joinery BOM API")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Bill of Materials composition and cost rollup",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin", "X-Requested-With", "X-User-Id", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ===================
# Exception Handlers
# ===================

def error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Render the standard error envelope (see schemas.common.ErrorResponse)."""
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    content["timestamp"] = datetime.utcnow().isoformat() + "Z"
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(JoineryException)
async def joinery_exception_handler(request: Request, exc: JoineryException):
    logger.warning(
        f"{exc.error_code}: {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path}
    )
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Request validation failed on %s", request.url.path, extra={"errors": errors})
    return error_response(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "DATABASE_ERROR", "A database error occurred. Please try again.")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred. Please try again later.")


app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "version": settings.VERSION,
        "status": "online",
        "api": settings.API_V1_STR,
    }


@app.get("/health")
def health_check():
    """Liveness plus a round trip to the database."""
    from app.db.session import engine

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
    return {"status": "healthy", "database": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8001, reload=True)
