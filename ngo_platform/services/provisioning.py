# ==============================================================================
# services/provisioning.py - Identity provisioning for person records
# ==============================================================================

"""
Beneficiaries and volunteers may carry an email address. When they do, the
record service publishes a ``PersonRegistered`` event instead of creating a
login inline; ``IdentityProvisioningHandler`` consumes it and links the
record to a (possibly new) user account with the matching organization role.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..models import User, utcnow
from ..utils.auth import find_active_role
from .auth_service import AuthService, generate_temporary_password, hash_password

logger = logging.getLogger(__name__)


class PersonRegistered(BaseModel):
    """A person record with an email was created or updated"""
    organization_id: int
    email: str
    name: str
    role: str  # organization role to grant: 'beneficiary' or 'volunteer'
    record_type: str
    record_id: Optional[int] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ProvisioningResult(BaseModel):
    user_id: int
    created: bool
    temporary_password: Optional[str] = None


class IdentityProvisioningHandler:
    """Creates or reuses the login account behind a person record"""

    def __init__(self, auth_service: AuthService = None):
        self.auth_service = auth_service or AuthService()

    def handle(self, event: PersonRegistered, db: Session) -> ProvisioningResult:
        email = event.email.lower().strip()
        user = db.query(User).filter_by(email=email).first()
        temporary_password = None
        created = False

        if not user:
            temporary_password = generate_temporary_password()
            user = User(
                email=email,
                name=event.name,
                password_hash=hash_password(temporary_password),
                is_global_admin=False,
            )
            db.add(user)
            db.flush()
            created = True
            logger.info(f"Provisioned user {user.id} for {event.record_type} {event.record_id}")

        if not find_active_role(user.id, event.organization_id, db):
            self.auth_service.grant_role(user.id, event.organization_id, event.role, db)
        return ProvisioningResult(user_id=user.id, created=created, temporary_password=temporary_password)


class EventDispatcher:
    """In-process fan-out of person events to their handlers"""

    def __init__(self):
        self._handlers: List[Callable[[PersonRegistered, Session], ProvisioningResult]] = []

    def subscribe(self, handler: Callable[[PersonRegistered, Session], ProvisioningResult]) -> None:
        self._handlers.append(handler)

    def publish(self, event: PersonRegistered, db: Session) -> List[ProvisioningResult]:
        logger.debug(f"Publishing PersonRegistered for {event.record_type} {event.record_id}")
        return [handler(event, db) for handler in self._handlers]


def default_dispatcher() -> EventDispatcher:
    dispatcher = EventDispatcher()
    dispatcher.subscribe(IdentityProvisioningHandler().handle)
    return dispatcher
