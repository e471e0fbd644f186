"""
FastAPI application for the studyflow service.

Provides REST API for:
- Project creation and document ingestion
- Study planning (topics, roadmap, assistant policy, diagnostic quiz)
- Learning actions (artifacts and inline notes)
- Submissions and grading
- Check-ins that adapt the roadmap
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from studyflow import __version__
from studyflow.db.database import get_engine, init_db
from studyflow.errors import StudyFlowError
from studyflow.generation.oracle import GatewayOracle
from studyflow.logging_config import configure_logging

settings = get_settings()


async def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "ok", None
    except (SQLAlchemyError, OSError) as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging(settings)
    logger.info("Starting studyflow service...")
    await init_db()
    oracle = GatewayOracle.from_settings(settings)
    app.state.oracle = oracle
    if not settings.has_ai_configured():
        logger.warning("AI gateway is not configured; plan and act calls will fail")
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down studyflow service...")
    await oracle.close()


app = FastAPI(
    title="StudyFlow",
    description="""
    Adaptive study pipeline over uploaded learning material.

    ## Flow

    ```
    Documents
        ↓ ingest (chunk, replace chunk set)
    Chunks
        ↓ plan (retrieve, rerank, generate)
    Topics + Roadmap + Diagnostic
        ↓ act / submit / checkin
    Artifacts, Attempts, adapted Roadmap
    ```

    The caller id is read from the `X-User-Id` header.
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StudyFlowError)
async def studyflow_error_handler(request: Request, exc: StudyFlowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Internal server error"})


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {"service": "studyflow", "version": __version__, "status": "ok"}


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = await _check_database_health()
    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "ai": "configured" if settings.has_ai_configured() else "not_configured",
        },
        "retrieval": settings.get_retrieval_config(),
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from studyflow.api.routers import artifacts_router, projects_router

app.include_router(projects_router.router, prefix="/projects", tags=["Projects"])
app.include_router(artifacts_router.router, prefix="/artifacts", tags=["Artifacts"])
