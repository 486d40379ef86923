# ==============================================================================
# services/record_service.py - Organization-scoped domain records
# ==============================================================================

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import schemas
from ..exceptions import (
    DuplicateRecordError, InvalidFieldValueError, RecordNotFoundError, handle_database_error,
)
from ..models import (
    AccountPayable, AccountReceivable, Beneficiary, Donation, Donor, Funder, Project, Volunteer,
)
from ..utils.logging import log_database_operation
from .provisioning import EventDispatcher, PersonRegistered, ProvisioningResult, default_dispatcher

logger = logging.getLogger(__name__)


class RecordType:
    """How one kind of record is validated, scoped and provisioned"""

    def __init__(self, name: str, model, schema: Type[BaseModel],
                 references: Dict[str, Any] = None, person_role: Optional[str] = None):
        self.name = name
        self.model = model
        self.schema = schema
        self.references = references or {}
        self.person_role = person_role


RECORD_TYPES: Dict[str, RecordType] = {
    "projects": RecordType("Project", Project, schemas.ProjectCreate),
    "donors": RecordType("Donor", Donor, schemas.DonorCreate),
    "donations": RecordType("Donation", Donation, schemas.DonationCreate,
                            references={"donor_id": Donor, "project_id": Project}),
    "beneficiaries": RecordType("Beneficiary", Beneficiary, schemas.BeneficiaryCreate,
                                person_role="beneficiary"),
    "volunteers": RecordType("Volunteer", Volunteer, schemas.VolunteerCreate,
                             person_role="volunteer"),
    "funders": RecordType("Funder", Funder, schemas.FunderCreate),
    "accounts-receivable": RecordType("Account receivable", AccountReceivable,
                                      schemas.AccountReceivableCreate,
                                      references={"donor_id": Donor, "project_id": Project}),
    "accounts-payable": RecordType("Account payable", AccountPayable,
                                   schemas.AccountPayableCreate,
                                   references={"project_id": Project}),
}


def serialize_record(record) -> Dict[str, Any]:
    data = {}
    for column in record.__table__.columns:
        value = getattr(record, column.name)
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        data[column.name] = value
    return data


class RecordService:
    """CRUD over the organization-scoped records (beneficiaries, donors, ...)"""

    def __init__(self, dispatcher: EventDispatcher = None):
        self.dispatcher = dispatcher or default_dispatcher()

    def get_record_type(self, resource: str) -> RecordType:
        record_type = RECORD_TYPES.get(resource)
        if not record_type:
            raise InvalidFieldValueError("resource", resource, sorted(RECORD_TYPES))
        return record_type

    def list_records(self, resource: str, organization_id: int, db: Session) -> List[Dict[str, Any]]:
        record_type = self.get_record_type(resource)
        records = db.query(record_type.model).filter_by(
            organization_id=organization_id
        ).order_by(record_type.model.id).all()
        return [serialize_record(r) for r in records]

    def get_record(self, resource: str, record_id: int, organization_id: int, db: Session):
        record_type = self.get_record_type(resource)
        record = db.query(record_type.model).filter_by(
            id=record_id, organization_id=organization_id
        ).first()
        if not record:
            raise RecordNotFoundError(record_type.name, record_id)
        return record

    @log_database_operation(logger, "create record")
    def create_record(self, resource: str, payload: Dict[str, Any], organization_id: int,
                      db: Session) -> Dict[str, Any]:
        record_type = self.get_record_type(resource)
        data = self._validate(record_type, payload)
        self._check_references(record_type, data, organization_id, db)

        record = record_type.model(organization_id=organization_id, **data)
        db.add(record)
        self._flush(record_type, db)
        provisioned = self._provision(record_type, record, db)
        db.commit()
        logger.info(f"Created {record_type.name} {record.id} in organization {organization_id}")
        return self._with_provisioning(serialize_record(record), provisioned)

    @log_database_operation(logger, "update record")
    def update_record(self, resource: str, record_id: int, changes: Dict[str, Any],
                      organization_id: int, db: Session) -> Dict[str, Any]:
        record_type = self.get_record_type(resource)
        record = self.get_record(resource, record_id, organization_id, db)

        current = {name: getattr(record, name) for name in record_type.schema.model_fields}
        data = self._validate(record_type, {**current, **(changes or {})})
        self._check_references(record_type, data, organization_id, db)

        email_changed = data.get("email") != current.get("email")
        for name, value in data.items():
            setattr(record, name, value)
        self._flush(record_type, db)
        provisioned = self._provision(record_type, record, db) if email_changed else None
        db.commit()
        return self._with_provisioning(serialize_record(record), provisioned)

    def delete_record(self, resource: str, record_id: int, organization_id: int, db: Session) -> None:
        record = self.get_record(resource, record_id, organization_id, db)
        db.delete(record)
        db.commit()

    def _validate(self, record_type: RecordType, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return record_type.schema.model_validate(payload).model_dump()
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or record_type.name
            raise InvalidFieldValueError(field, first.get("input"), None) from e

    def _check_references(self, record_type: RecordType, data: Dict[str, Any],
                          organization_id: int, db: Session) -> None:
        for field, model in record_type.references.items():
            ref_id = data.get(field)
            if ref_id is None:
                continue
            exists = db.query(model).filter_by(id=ref_id, organization_id=organization_id).first()
            if not exists:
                raise RecordNotFoundError(model.__name__, ref_id)

    def _flush(self, record_type: RecordType, db: Session) -> None:
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateRecordError(record_type.name, "unique field", str(e.orig)) from e
        except Exception as e:
            db.rollback()
            raise handle_database_error(e, f"saving {record_type.name}") from e

    def _provision(self, record_type: RecordType, record, db: Session) -> Optional[ProvisioningResult]:
        if not record_type.person_role or not getattr(record, "email", None):
            return None
        event = PersonRegistered(
            organization_id=record.organization_id,
            email=record.email,
            name=record.name,
            role=record_type.person_role,
            record_type=record_type.name,
            record_id=record.id,
        )
        results = self.dispatcher.publish(event, db)
        if not results:
            return None
        record.user_id = results[0].user_id
        return results[0]

    @staticmethod
    def _with_provisioning(data: Dict[str, Any], provisioned: Optional[ProvisioningResult]) -> Dict[str, Any]:
        """Attach the login details staff must hand over to a newly provisioned person"""
        if provisioned is not None:
            data["provisioned"] = provisioned.model_dump()
        return data
