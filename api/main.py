"""
api/main.py -- FastAPI application entry point for the Tabitha Home records API.

Serves the staff front-end: authentication, staff accounts, child records,
uploads and reports, all under /api/v1.

Install deps:  pip install -e .
Run with:      uvicorn asgi:app --reload
               python asgi.py

Middleware stack (outermost to innermost, after request logging):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the configured front-end origins
  3. SlowAPIMiddleware     -- enforces the default and per-route rate limits

Lifespan opens the stores on startup and disposes their engines on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.children import router as children_router
from api.routes.v1.dashboard import router as dashboard_router
from api.routes.v1.reports import router as reports_router
from api.routes.v1.staff import router as staff_router
from api.routes.v1.uploads import router as uploads_router
from auth.guard import AccountGuard
from auth.store import AccountStore
from core.config import get_settings
from records.files import FileStore
from records.store import RecordStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tabitha.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores before the first request and close them on shutdown.

    Both stores point at the same database. The guard wraps the account
    store; the file store owns the upload directory.
    """
    logger.info("Tabitha Home API starting up")
    app.state.account_store = AccountStore(settings.database_url)
    app.state.record_store = RecordStore(settings.database_url)
    app.state.guard = AccountGuard(
        app.state.account_store,
        max_attempts=settings.max_login_attempts,
        lockout_minutes=settings.lockout_minutes,
    )
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.state.files = FileStore(settings.upload_dir, settings.max_upload_bytes)
    logger.info("Stores initialized (accounts=%d)", app.state.account_store.count_all())

    yield

    app.state.record_store.close()
    app.state.account_store.close()
    logger.info("Tabitha Home API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Tabitha Home Records API",
    description="Staff accounts, child records, uploads and reports for Tabitha Home.",
    version=API_VERSION,
    lifespan=lifespan,
    # Interactive docs are exposed only in debug; the schema lists every internal field.
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the most recently added middleware the outermost one, so
# they are added innermost-first: SlowAPI, then CORS, then TrustedHost. The
# log_requests function middleware below is registered last and wraps all
# three.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(staff_router, prefix="/api/v1", tags=["Staff"])
app.include_router(children_router, prefix="/api/v1", tags=["Children"])
app.include_router(uploads_router, prefix="/api/v1", tags=["Uploads"])
app.include_router(reports_router, prefix="/api/v1", tags=["Reports"])
app.include_router(dashboard_router, prefix="/api/v1", tags=["Dashboard"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same envelope so the front-end can parse errors
# without choosing a schema by status code: "fail" for 4xx, "error" for 5xx.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, errors: list[FieldError] | None = None) -> JSONResponse:
    body = ErrorResponse(
        status="fail" if status_code < 500 else "error",
        code=code,
        message=message,
        errors=errors,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests from this IP, please try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


def _field_name(loc: tuple) -> str:
    # ("body", "address", "state") -> "address.state"; ("body",) -> "body"
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one entry per invalid field."""
    errors = [
        FieldError(
            field=_field_name(tuple(err.get("loc", ()))),
            message=err.get("msg", "").removeprefix("Value error, "),
        )
        for err in exc.errors()
    ]
    message = "Invalid input data. " + "; ".join(f"{e.field}: {e.message}" for e in errors)
    return _error(400, "validation_error", message, errors)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique constraint violations that a route did not translate itself."""
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error(409, "duplicate", "A record with one of these unique values already exists.")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routes raise HTTPException(detail={"code": ..., "message": ...}); unwrap it into the envelope.

    Registered for the Starlette base class so unknown paths (404) and wrong
    methods (405) get the same envelope as route errors.
    """
    if isinstance(exc.detail, dict):
        response = _error(
            exc.status_code,
            exc.detail.get("code", f"http_{exc.status_code}"),
            exc.detail.get("message", ""),
        )
    else:
        response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log, never the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Something went wrong.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public and never rate limited, so load balancers can poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
@limiter.exempt
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    database_ok = request.app.state.record_store.ping()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=API_VERSION,
        components={"api": "ok", "database": "ok" if database_ok else "unavailable"},
    )
