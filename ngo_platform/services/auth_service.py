# ==============================================================================
# services/auth_service.py - Identity & tenancy service
# ==============================================================================

import logging
import secrets
import string
from typing import List, Dict, Any, Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config.settings import Settings
from ..exceptions import (
    AuthenticationError, AuthorizationError, DuplicateRecordError,
    InvalidFieldValueError, OrganizationNotFoundError, RequiredFieldError,
)
from ..models import Organization, User, UserRole, utcnow
from ..utils.auth import ORGANIZATION_ROLES, find_active_role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_temporary_password(length: int = None) -> str:
    length = length or Settings.TEMPORARY_PASSWORD_LENGTH
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def serialize_organization(org: Organization) -> Dict[str, Any]:
    return {
        "id": org.id,
        "name": org.name,
        "slug": org.slug,
        "email": org.email,
        "subscription_plan": org.subscription_plan,
        "subscription_status": org.subscription_status,
    }


def serialize_user(user: User) -> Dict[str, Any]:
    return {"id": user.id, "email": user.email, "name": user.name}


class AuthService:
    """Service for users, organizations and organization roles"""

    def register(self, email: str, password: str, name: str,
                 organization_name: str, organization_slug: str, db: Session) -> Dict[str, Any]:
        """Create a user, its organization and an admin role in one go"""
        email = (email or "").lower().strip()
        if not email:
            raise RequiredFieldError("email", "registration")
        if not password:
            raise RequiredFieldError("password", "registration")

        if db.query(User).filter_by(email=email).first():
            raise DuplicateRecordError("User", "email", email)
        if db.query(Organization).filter_by(slug=organization_slug).first():
            raise DuplicateRecordError("Organization", "slug", organization_slug)

        user = User(email=email, password_hash=hash_password(password), name=name, is_global_admin=False)
        db.add(user)
        organization = Organization(name=organization_name, slug=organization_slug, email=email)
        db.add(organization)
        db.flush()

        db.add(UserRole(user_id=user.id, organization_id=organization.id, role="admin",
                        granted_by=user.id, is_active=True))
        db.commit()
        logger.info(f"Registered user {user.id} with organization '{organization.slug}'")

        return {"user": user, "organization": organization}

    def authenticate_user(self, email: str, password: str, db: Session) -> User:
        user = db.query(User).filter_by(email=(email or "").lower().strip()).first()
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")

        user.last_login_at = utcnow()
        db.commit()
        return user

    def get_user_organizations(self, user_id: int, db: Session) -> List[Organization]:
        """Organizations where the user holds an active role"""
        return db.query(Organization).join(
            UserRole, UserRole.organization_id == Organization.id
        ).filter(
            UserRole.user_id == user_id,
            UserRole.is_active.is_(True),
        ).distinct().order_by(Organization.id).all()

    def switch_organization(self, user: User, organization_id: int, db: Session) -> Organization:
        organization = db.get(Organization, organization_id)
        if not organization:
            raise OrganizationNotFoundError(organization_id)
        if not user.is_global_admin and not find_active_role(user.id, organization_id, db):
            raise AuthorizationError("Access denied to this organization")
        return organization

    def grant_role(self, user_id: int, organization_id: int, role: str, db: Session,
                   granted_by: Optional[int] = None) -> UserRole:
        """Grant an organization role, reusing the active one when present"""
        if role not in ORGANIZATION_ROLES:
            raise InvalidFieldValueError("role", role, ORGANIZATION_ROLES)

        existing = find_active_role(user_id, organization_id, db)
        if existing:
            if existing.role != role:
                existing.role = role
                existing.granted_by = granted_by
                existing.granted_at = utcnow()
            return existing

        user_role = UserRole(user_id=user_id, organization_id=organization_id, role=role,
                             granted_by=granted_by, is_active=True)
        db.add(user_role)
        db.flush()
        return user_role

    def list_organization_users(self, organization_id: int, db: Session,
                                role: Optional[str] = None) -> List[Dict[str, Any]]:
        query = db.query(User, UserRole).join(UserRole, UserRole.user_id == User.id).filter(
            UserRole.organization_id == organization_id,
            UserRole.is_active.is_(True),
        )
        if role:
            query = query.filter(UserRole.role == role)

        return [
            {**serialize_user(user), "role": user_role.role}
            for user, user_role in query.order_by(User.name).all()
        ]
