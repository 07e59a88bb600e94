from contextlib import asynccontextmanager
from typing import Any, cast

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from challenge_hub.api import admin, analytics, labels, public
from challenge_hub.core.config import settings
from challenge_hub.core.errors import ConfigurationError, init_sentry
from challenge_hub.core.logging_config import configure_logging
from challenge_hub.db import create_db_and_tables
from challenge_hub.middleware.context import RequestContextMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Challenge Hub API starting", environment=settings.ENVIRONMENT)

    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    if settings.AUTO_CREATE_TABLES:
        create_db_and_tables()
        logger.info("Database tables ensured")

    yield


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    settings.FRONTEND_URL,
]
origins = list(set([o for o in origins if o]))

app.add_middleware(cast(Any, RequestContextMiddleware))

# GZip compression for responses > 1KB (CSV exports, analytics payloads)
app.add_middleware(cast(Any, GZipMiddleware), minimum_size=1000)

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Correlation-ID"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error", error=str(exc), missing=exc.missing)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service is not configured", "missing": exc.missing},
    )


app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])
app.include_router(labels.router, prefix="/api/labels", tags=["labels"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(public.router, tags=["public"])


@app.get("/")
def root():
    return {"message": "Welcome to Challenge Hub API"}


@app.get("/health")
def health():
    """Basic liveness check endpoint."""
    return {"status": "healthy"}


# Root-level slugs must be matched after every other route
app.include_router(public.legacy_router, tags=["public"])
