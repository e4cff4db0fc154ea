"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from client_payments.config import get_settings
from client_payments.domain.dates import format_timestamp
from client_payments.domain.exceptions import ConflictError, RecordsError
from client_payments.infrastructure.database import Base, engine
from client_payments.infrastructure.dependencies import get_sse_manager
from client_payments.infrastructure.logging.log_config import setup_logging
from client_payments.presentation.api.router import router as api_router

logger = logging.getLogger(__name__)


async def _create_tables() -> None:
    """Create the records tables when a database is configured."""
    if engine is None:
        logger.warning("DATABASE_URL is not configured; the records API will answer 503.")
        return
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.warning("Could not create records tables: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup prepares logging and tables; shutdown closes SSE streams and the engine."""
    setup_logging()
    await _create_tables()

    yield

    # Shutdown
    sse = get_sse_manager()
    await sse.shutdown()
    if engine is not None:
        await engine.dispose()


async def records_error_handler(request: Request, exc: RecordsError) -> JSONResponse:
    """Render records errors as ``{error, code}`` (plus ``updatedAt`` on conflicts)."""
    body: dict[str, str | None] = {"error": exc.message, "code": exc.code}
    if isinstance(exc, ConflictError):
        body["updatedAt"] = format_timestamp(exc.current_updated_at)
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.http_status, content=body)


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Records-Source"],
    )

    app.add_exception_handler(RecordsError, records_error_handler)

    # Mount API routes
    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "client_payments.main:app",
        host="0.0.0.0",
        port=8020,
        reload=True,
    )
