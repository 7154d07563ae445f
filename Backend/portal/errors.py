"""
Error taxonomy shared by services and routes.

Services raise these; main.py maps them to the JSON error envelope
``{"error": <message>, "status_code": <code>}``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)


class AuthenticationError(PortalError):
    """Missing, malformed, invalid or expired credentials."""

    status_code = 401
    default_message = "Authentication required"


class TokenExpiredError(AuthenticationError):
    default_message = "Token has expired"


class AuthorizationError(PortalError):
    """Valid identity, insufficient role."""

    status_code = 403
    default_message = "Admin access required"


class PendingApprovalError(AuthorizationError):
    default_message = "Your account is pending administrator approval"


class ValidationError(PortalError):
    status_code = 400
    default_message = "Invalid request parameters"


class ConflictError(PortalError):
    status_code = 400
    default_message = "User with this email already exists"


class NotFoundError(PortalError):
    status_code = 404
    default_message = "Not found"


class DependencyError(PortalError):
    """A persistence, blob-store or other upstream call failed.

    The message is logged server-side; clients only see ``public_message``.
    """

    status_code = 500
    default_message = "Upstream service failure"
    public_message = "Internal server error"
