"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from quizportal.config import settings
from quizportal.api import (
    health_router,
    evaluations_router,
    attempts_router,
    admin_router,
)
from quizportal.core.errors import PortalError
from quizportal.schemas.common import ErrorResponse
from quizportal.services.maintenance import MaintenanceModeCache

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 QuizPortal attempt engine starting…")
    app.state.maintenance_cache = MaintenanceModeCache(
        ttl_seconds=settings.MAINTENANCE_CACHE_TTL_SECONDS
    )
    yield
    logger.info("✅ QuizPortal attempt engine shut down")


app = FastAPI(
    title="QuizPortal API",
    description="Quiz and assessment attempt lifecycle with integrity enforcement",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Error envelope ────────────────────────────────────────────────────────────


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    body = ErrorResponse(
        error_code=exc.error_code, message=exc.message, details=exc.details
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = ErrorResponse(
        error_code="internal_error", message="An unexpected error occurred."
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(evaluations_router, prefix="/api/evaluations", tags=["Evaluations"])
app.include_router(attempts_router, prefix="/api/attempts", tags=["Attempts"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])


@app.get("/")
async def root():
    return {
        "name": "QuizPortal API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
