"""
FastAPI application factory and API package.

Run with:
    uvicorn skills_portal.api:app --reload --port 8000

Or via main.py:
    python -m skills_portal --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skills_portal.config import get_settings
from skills_portal.errors import NotAuthorized, PortalError
from skills_portal.api.routes import capability_router, health_router, user_router, verify_router
from skills_portal.api.admin_routes import admin_router

logger = logging.getLogger(__name__)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    content = {"detail": exc.message}
    if isinstance(exc, NotAuthorized):
        content["reason"] = exc.reason
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Course Portal Skills API",
        description="Capability entitlements, skill evidence and verifiable skills portfolios",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.public_base_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(PortalError, portal_error_handler)

    application.include_router(health_router, tags=["Health"])
    application.include_router(capability_router, prefix="/api/capabilities", tags=["Capabilities"])
    application.include_router(user_router, prefix="/api/user", tags=["User"])
    application.include_router(verify_router, prefix="/api/verify", tags=["Verify"])
    application.include_router(admin_router, prefix="/api/admin", tags=["Admin"])

    @application.on_event("startup")
    async def startup():
        logger.info(f"Starting {settings.app_name} API ({settings.storage_backend} storage)")

    return application


# Module-level instance for `uvicorn skills_portal.api:app`
app = create_app()
