"""Bearer-token authentication and role checks (SQLAlchemy, sync)."""
from __future__ import annotations

from typing import Optional, List
from uuid import UUID
import logging

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.errors import AuthenticationError, AuthorizationError, PendingApprovalError
from portal.models.user import User
from portal.schemas.auth import Role
from portal.utils.security import decode_token


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext:
    """Context object holding the authenticated user and the claims it came from."""
    def __init__(self, user: User, claims: dict):
        self.user = user
        self.claims = claims
        self.identity_id: UUID = user.id
        self.email: str = user.email
        self.role: Role = Role.normalize(user.role)

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @property
    def is_approved(self) -> bool:
        return self.user.has_access


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Resolve the bearer token to a live user row.

    The role is always re-read from the database so a demoted or deleted
    account loses access before its token expires.
    """
    if not credentials:
        raise AuthenticationError("Missing Authorization header")

    claims = decode_token(credentials.credentials)

    try:
        user_id = UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid or expired token")

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")

    return AuthContext(user=user, claims=claims)


class RoleChecker:
    """Dependency class for role-based access control."""
    def __init__(self, allowed_roles: List[Role]):
        self.allowed_roles = allowed_roles

    def __call__(self, auth: AuthContext = Depends(get_current_user)) -> AuthContext:
        if auth.role not in self.allowed_roles:
            if Role.SUPER_ADMIN in self.allowed_roles and Role.ADMIN not in self.allowed_roles:
                raise AuthorizationError("Super admin access required")
            raise AuthorizationError("Admin access required")
        return auth


require_admin = RoleChecker([Role.ADMIN, Role.SUPER_ADMIN])
require_super_admin = RoleChecker([Role.SUPER_ADMIN])


def require_approved(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    """Gate for content routes: pending or rejected members are turned away."""
    if not auth.is_approved:
        if auth.user.approval_status == "rejected":
            raise AuthorizationError("Your account application was not approved")
        raise PendingApprovalError()
    return auth
