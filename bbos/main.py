"""
FastAPI application entry point
"""
import logging
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from bbos import __version__
from bbos.core.config import settings
from bbos.core.database import init_db
from bbos.core.exceptions import DataCollectionError
from bbos.core.logging_setup import setup_logging
from bbos.api.v1 import (
    auth,
    profiles,
    departments,
    data_banks,
    forms,
    schedules,
    schedule_forms,
    form_submissions,
    dashboard,
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    app = FastAPI(
        title="BBoS Data Collection API",
        description="Dynamic form data collection for departmental statistics",
        version=__version__,
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        redirect_slashes=False,
    )

    # Session cookie, re-issued on every response so the expiry slides
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_TTL,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith(settings.API_PREFIX):
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(f"{request.method} {request.url.path} {response.status_code} in {elapsed_ms:.0f}ms")
        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DataCollectionError)
    async def domain_error_handler(request: Request, exc: DataCollectionError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path}: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.code, "message": exc.message},
        )

    # Include routers
    prefix = settings.API_PREFIX
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(profiles.router, prefix=f"{prefix}/profiles", tags=["profiles"])
    app.include_router(departments.router, prefix=f"{prefix}/departments", tags=["departments"])
    app.include_router(data_banks.router, prefix=f"{prefix}/data-banks", tags=["data-banks"])
    app.include_router(forms.router, prefix=f"{prefix}/forms", tags=["forms"])
    app.include_router(forms.field_groups_router, prefix=f"{prefix}/field-groups", tags=["forms"])
    app.include_router(schedules.router, prefix=f"{prefix}/schedules", tags=["schedules"])
    app.include_router(schedule_forms.router, prefix=f"{prefix}/schedule-forms", tags=["schedule-forms"])
    app.include_router(form_submissions.router, prefix=f"{prefix}/form-submissions", tags=["form-submissions"])
    app.include_router(dashboard.router, prefix=f"{prefix}/dashboard", tags=["dashboard"])

    @app.get("/")
    async def root():
        return {"message": settings.APP_NAME, "version": __version__}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    if settings.AUTO_CREATE_TABLES:
        init_db()

    return app


app = create_app()
