# ==============================================================================
# utils/auth.py - Session & role gate
# ==============================================================================

"""
Cookie-backed session gate. The session carries ``user_id`` and
``organization_id``; every protected endpoint re-reads the user's active role
in that organization instead of trusting a cached value.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..exceptions import AuthenticationError, AuthorizationError, to_http_exception
from ..models import User, UserRole, UserCourseRole, utcnow
from .database import get_db

logger = logging.getLogger(__name__)

ORGANIZATION_ROLES = ("admin", "manager", "volunteer", "beneficiary")
STAFF_ROLES = ("admin", "manager")
COURSE_STAFF_ROLES = ("instructor", "assistant")


class SessionContext:
    """The resolved (user, organization, role) triple for one request"""

    def __init__(self, user: User, organization_id: int, role: Optional[str]):
        self.user = user
        self.organization_id = organization_id
        self.role = role

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_staff(self) -> bool:
        return bool(self.user.is_global_admin) or self.role in STAFF_ROLES


def find_active_role(user_id: int, organization_id: int, db: Session) -> Optional[UserRole]:
    """Return the user's active, unexpired role in the organization"""
    now = utcnow()
    roles = db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.organization_id == organization_id,
        UserRole.is_active.is_(True),
    ).order_by(UserRole.granted_at.desc()).all()
    for role in roles:
        if role.expires_at is None or role.expires_at > now:
            return role
    return None


def start_session(request: Request, user_id: int, organization_id: Optional[int]) -> None:
    request.session["user_id"] = user_id
    if organization_id is not None:
        request.session["organization_id"] = organization_id
    else:
        request.session.pop("organization_id", None)


def get_session_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the logged-in user, without requiring an organization"""
    user_id = request.session.get("user_id")
    if not user_id:
        raise to_http_exception(AuthenticationError())

    user = db.get(User, user_id)
    if not user:
        request.session.clear()
        raise to_http_exception(AuthenticationError("Session user no longer exists"))
    return user


def get_current_context(request: Request, db: Session = Depends(get_db)) -> SessionContext:
    """Resolve (user, organization, role) and re-check membership"""
    user = get_session_user(request, db)

    organization_id = request.session.get("organization_id")
    if not organization_id:
        raise to_http_exception(AuthorizationError("Organization context required"))

    role = find_active_role(user.id, organization_id, db)
    if role is None and not user.is_global_admin:
        logger.warning(f"User {user.id} has no active role in organization {organization_id}")
        raise to_http_exception(AuthorizationError("Access denied to this organization"))

    return SessionContext(user, organization_id, role.role if role else "admin")


def require_staff(ctx: SessionContext = Depends(get_current_context)) -> SessionContext:
    """Only organization admins and managers"""
    if not ctx.is_staff:
        raise to_http_exception(AuthorizationError("Admin or manager role required"))
    return ctx


def is_course_staff(ctx: SessionContext, course_id: int, db: Session) -> bool:
    """Organization staff, or an active instructor/assistant of the course"""
    if ctx.is_staff:
        return True
    course_role = db.query(UserCourseRole).filter_by(
        user_id=ctx.user_id, course_id=course_id, is_active=True
    ).first()
    return course_role is not None and course_role.role in COURSE_STAFF_ROLES
