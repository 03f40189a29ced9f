"""
Error taxonomy for the portal engine.

Entitlement code never lets these escape to callers (decisions fail closed);
the HTTP layer maps the rest onto status codes.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for every engine error."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotAuthenticated(PortalError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotAuthorized(PortalError):
    status_code = 403

    def __init__(self, reason: str = "forbidden") -> None:
        super().__init__(f"Not authorized: {reason}")
        self.reason = reason


class SourceUnavailable(PortalError):
    """The enrollment provider failed or timed out."""

    status_code = 503


class NotFound(PortalError):
    status_code = 404


class ValidationError(PortalError):
    """Malformed evidence, allocation or category input."""

    status_code = 400
