"""
FastAPI dependencies — the Portal instance and the caller's Principal.

Tests override `portal_dependency` through `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from skills_portal.config import get_settings
from skills_portal.errors import NotAuthenticated, NotAuthorized
from skills_portal.models.schemas import Principal
from skills_portal.services.portal import Portal, get_portal
from skills_portal.services.session_decoder import SessionDecoder

_decoder = SessionDecoder()


def portal_dependency() -> Portal:
    return get_portal()


def current_principal(request: Request) -> Optional[Principal]:
    """Principal from the session cookie, or None when absent or malformed."""
    cookie = request.cookies.get(get_settings().session_cookie_name)
    return _decoder.decode(cookie)


def require_principal(
    principal: Optional[Principal] = Depends(current_principal),
) -> Principal:
    if principal is None:
        raise NotAuthenticated()
    return principal


def require_admin(principal: Principal = Depends(require_principal)) -> Principal:
    if not principal.is_admin:
        raise NotAuthorized("admin role required")
    return principal
