import pytest

from ngo_platform.exceptions import (
    DuplicateRecordError, InvalidFieldValueError, RecordNotFoundError,
)
from ngo_platform.models import Beneficiary, User, UserRole
from ngo_platform.services import IdentityProvisioningHandler, PersonRegistered, RecordService
from ngo_platform.services.auth_service import verify_password


@pytest.fixture
def service():
    return RecordService()


def _event(organization, email="lucia@example.org", role="beneficiary"):
    return PersonRegistered(organization_id=organization.id, email=email, name="Lucia",
                            role=role, record_type="Beneficiary", record_id=1)


def test_handler_creates_user_with_role(db, organization):
    result = IdentityProvisioningHandler().handle(_event(organization, email="Lucia@Example.org "), db)
    db.commit()

    assert result.created is True
    user = db.get(User, result.user_id)
    assert user.email == "lucia@example.org"
    assert verify_password(result.temporary_password, user.password_hash)
    role = db.query(UserRole).filter_by(user_id=user.id, organization_id=organization.id).one()
    assert role.role == "beneficiary"


def test_handler_reuses_user_and_keeps_existing_role(db, organization, admin):
    result = IdentityProvisioningHandler().handle(_event(organization, email=admin.email), db)
    db.commit()

    assert result.created is False
    assert result.user_id == admin.id
    assert result.temporary_password is None
    roles = db.query(UserRole).filter_by(user_id=admin.id, organization_id=organization.id).all()
    assert [r.role for r in roles] == ["admin"]


def test_handler_grants_role_in_new_organization(db, organization, other_organization, admin):
    IdentityProvisioningHandler().handle(_event(other_organization, email=admin.email, role="volunteer"), db)
    db.commit()

    role = db.query(UserRole).filter_by(user_id=admin.id, organization_id=other_organization.id).one()
    assert role.role == "volunteer"


def test_create_beneficiary_with_email_links_user(db, service, organization):
    record = service.create_record("beneficiaries", {
        "registration_number": "BEN-001",
        "name": "Lucia Souza",
        "email": "lucia@example.org",
        "birth_date": "1990-05-17",
    }, organization.id, db)

    assert record["user_id"] is not None
    assert record["birth_date"] == "1990-05-17"
    user = db.get(User, record["user_id"])
    assert user.email == "lucia@example.org"


def test_new_login_returns_temporary_password(db, service, organization):
    record = service.create_record("volunteers", {
        "volunteer_number": "VOL-010", "name": "Joana", "email": "joana@example.org",
    }, organization.id, db)

    provisioned = record["provisioned"]
    assert provisioned["created"] is True
    assert provisioned["user_id"] == record["user_id"]
    user = db.get(User, record["user_id"])
    assert verify_password(provisioned["temporary_password"], user.password_hash)


def test_existing_login_is_linked_without_password(db, service, organization, admin):
    record = service.create_record("volunteers", {
        "volunteer_number": "VOL-011", "name": "Ana", "email": admin.email,
    }, organization.id, db)

    assert record["provisioned"] == {"user_id": admin.id, "created": False, "temporary_password": None}


def test_create_volunteer_without_email_has_no_login(db, service, organization):
    record = service.create_record("volunteers", {
        "volunteer_number": "VOL-001", "name": "Pedro", "skills": ["teaching"],
    }, organization.id, db)

    assert record["user_id"] is None
    assert "provisioned" not in record
    assert db.query(User).count() == 0


def test_update_adding_email_provisions(db, service, organization):
    record = service.create_record("volunteers", {"volunteer_number": "VOL-002", "name": "Rita"},
                                   organization.id, db)

    updated = service.update_record("volunteers", record["id"], {"email": "rita@example.org"},
                                    organization.id, db)

    assert updated["user_id"] is not None
    assert updated["name"] == "Rita"


def test_duplicate_registration_number(db, service, organization):
    payload = {"registration_number": "BEN-009", "name": "Ana"}
    service.create_record("beneficiaries", payload, organization.id, db)

    with pytest.raises(DuplicateRecordError):
        service.create_record("beneficiaries", payload, organization.id, db)
    assert db.query(Beneficiary).count() == 1


def test_donation_reference_must_be_in_organization(db, service, organization, other_organization):
    donor = service.create_record("donors", {"type": "individual", "name": "Carlos"},
                                  other_organization.id, db)

    with pytest.raises(RecordNotFoundError):
        service.create_record("donations", {"amount": "150.00", "donor_id": donor["id"]}, organization.id, db)


def test_invalid_payload_is_rejected(db, service, organization):
    with pytest.raises(InvalidFieldValueError):
        service.create_record("donations", {"amount": -5}, organization.id, db)


def test_records_are_scoped_by_organization(db, service, organization, other_organization):
    project = service.create_record("projects", {"name": "Community Garden", "budget": "2500.50"},
                                    organization.id, db)

    assert project["budget"] == 2500.5
    assert service.list_records("projects", other_organization.id, db) == []
    with pytest.raises(RecordNotFoundError):
        service.get_record("projects", project["id"], other_organization.id, db)
