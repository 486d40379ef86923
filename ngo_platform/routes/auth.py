# ==============================================================================
# routes/auth.py - Authentication & organization routes
# ==============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from ..exceptions import NGOPlatformBaseException, create_http_exception, to_http_exception
from ..models import User
from ..schemas import RegisterRequest, SwitchOrganizationRequest
from ..services import AuthService
from ..services.auth_service import serialize_organization, serialize_user
from ..utils.auth import SessionContext, get_session_user, require_staff, start_session
from ..utils.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize services
auth_service = AuthService()


def _session_payload(request: Request, user: User, db: Session) -> dict:
    organizations = auth_service.get_user_organizations(user.id, db)
    return {
        "user": serialize_user(user),
        "organizations": [serialize_organization(o) for o in organizations],
        "current_organization_id": request.session.get("organization_id"),
    }


@router.post("/auth/register")
def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Create a user, its organization and start a session"""
    try:
        result = auth_service.register(body.email, body.password, body.name,
                                       body.organization_name, body.organization_slug, db)
        start_session(request, result["user"].id, result["organization"].id)
        return {
            "user": serialize_user(result["user"]),
            "organization": serialize_organization(result["organization"]),
        }
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error during registration: {e}")
        raise create_http_exception(500, f"Registration failed: {str(e)}")


@router.post("/auth/login")
def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db)
):
    """Authenticate and open a session on the user's first organization"""
    try:
        user = auth_service.authenticate_user(email, password, db)
        organizations = auth_service.get_user_organizations(user.id, db)
        start_session(request, user.id, organizations[0].id if organizations else None)
        return _session_payload(request, user, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error during login: {e}")
        raise create_http_exception(500, f"Login failed: {str(e)}")


@router.post("/auth/logout")
def logout(request: Request):
    """Handle logout"""
    request.session.clear()
    return {"success": True}


@router.get("/auth/me")
def me(request: Request, user: User = Depends(get_session_user), db: Session = Depends(get_db)):
    """Current user, organizations and active organization"""
    try:
        return _session_payload(request, user, db)
    except Exception as e:
        logger.error(f"Error in me: {e}")
        raise create_http_exception(500, f"Error retrieving session: {str(e)}")


@router.post("/organizations/switch")
def switch_organization(
    body: SwitchOrganizationRequest,
    request: Request,
    user: User = Depends(get_session_user),
    db: Session = Depends(get_db)
):
    """Change the organization the session acts in"""
    try:
        organization = auth_service.switch_organization(user, body.organization_id, db)
        request.session["organization_id"] = organization.id
        return {"organization": serialize_organization(organization)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error switching organization: {e}")
        raise create_http_exception(500, f"Error switching organization: {str(e)}")


@router.get("/organizations/users")
def list_organization_users(
    role: Optional[str] = None,
    ctx: SessionContext = Depends(require_staff),
    db: Session = Depends(get_db)
):
    """Members of the current organization, optionally filtered by role"""
    try:
        return {"users": auth_service.list_organization_users(ctx.organization_id, db, role=role)}
    except Exception as e:
        logger.error(f"Error listing organization users: {e}")
        raise create_http_exception(500, f"Error listing users: {str(e)}")
