# ABOUTME: FastAPI app factory for the read-write API and the read-only gateway.
# ABOUTME: Storage is resolved once at startup; errors render as {error, message, queryTime}.

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.routes import build_router
from core.config import (
    API_HOST,
    APP_NAME,
    APP_VERSION,
    CORS_ORIGINS,
    DB_BUSY_TIMEOUT_MS,
    PORT,
    READ_ONLY_HINT,
    REQUEST_TIMEOUT_MS,
)
from core.database import ConnectionProvider, ping
from core.errors import ApiError, StorageUnavailableError
from core.storage import resolve_default_target, resolve_read_only_target

# Non-GET requests under these prefixes never reach storage on the read-only gateway.
GUARDED_PREFIXES = ("/api/goals", "/api/tasks", "/api/focus", "/api/progress")

READ_ONLY_REJECTION = {
    "error": "Read-Only Mode",
    "message": "This is a read-only viewer. Contact the administrator to make changes.",
    "hint": READ_ONLY_HINT,
}


def _is_guarded(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in GUARDED_PREFIXES)


def _describe_validation_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query"))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


def _startup_check(provider: ConnectionProvider) -> None:
    """Open one connection so storage problems show up in the log at startup."""
    try:
        with provider.session() as session:
            ping(session)
    except (StorageUnavailableError, SQLAlchemyError) as e:
        logging.error("Database connection test failed: %s", e)
        return
    logging.info(
        "Database connection test successful (%s: %s)",
        provider.storage_kind,
        provider.describe(),
    )


def create_app(
    provider: ConnectionProvider | None = None,
    *,
    read_only: bool = False,
    request_timeout_ms: int = REQUEST_TIMEOUT_MS,
) -> FastAPI:
    """Build the API. Without a provider, storage is resolved from config at startup."""
    owns_provider = provider is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.provider is None:
            target = resolve_read_only_target() if read_only else resolve_default_target()
            app.state.provider = ConnectionProvider(
                target, read_only=read_only, busy_timeout_ms=DB_BUSY_TIMEOUT_MS
            )
        _startup_check(app.state.provider)
        yield
        if owns_provider:
            app.state.provider.close()
            app.state.provider = None

    title = f"{APP_NAME} Read-Only Viewer" if read_only else f"{APP_NAME} API"
    app = FastAPI(title=title, version=APP_VERSION, lifespan=lifespan)
    app.state.provider = provider
    app.state.read_only = read_only
    app.state.request_timeout_ms = request_timeout_ms

    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_json())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "message": _describe_validation_errors(exc.errors()),
            },
        )

    if read_only:

        @app.middleware("http")
        async def _block_writes(request: Request, call_next):
            if request.method != "GET" and _is_guarded(request.url.path):
                logging.info(
                    "Blocked %s %s (read-only)", request.method, request.url.path
                )
                return JSONResponse(status_code=403, content=READ_ONLY_REJECTION)
            return await call_next(request)

    # Added after the write guard so CORS preflight is answered first.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(build_router(read_only=read_only))
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the read-write API on PORT."""
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=API_HOST, port=PORT)
