from datetime import datetime

import pytest

from ngo_platform.exceptions import PreconditionFailedError, UserNotFoundError
from ngo_platform.models import UserCourseProgress, UserCourseRole
from ngo_platform.services import EnrollmentService
from ngo_platform.services.enrollment_service import RECONCILED_ROLE_NOTE


@pytest.fixture
def service():
    return EnrollmentService()


@pytest.fixture
def course(make_course, organization):
    return make_course(organization)


def test_reconcile_creates_role_for_orphan_progress(db, service, course, learner):
    started = datetime(2024, 3, 1, 9, 30)
    db.add(UserCourseProgress(user_id=learner.id, course_id=course.id, progress=40,
                              completed_modules=[], created_at=started))
    db.commit()

    summary = service.reconcile_enrollments(course.id, db)

    assert summary["roles_created"] == 1
    role = db.query(UserCourseRole).filter_by(user_id=learner.id, course_id=course.id).one()
    assert role.role == "student"
    assert role.is_active is True
    assert role.notes == RECONCILED_ROLE_NOTE
    assert role.assigned_at == started


def test_reconcile_creates_progress_for_student_without_one(db, service, course, learner):
    db.add(UserCourseRole(user_id=learner.id, course_id=course.id, role="student", is_active=True))
    db.commit()

    summary = service.reconcile_enrollments(course.id, db)

    assert summary["progress_created"] == 1
    progress = db.query(UserCourseProgress).filter_by(user_id=learner.id, course_id=course.id).one()
    assert progress.status == "in_progress"
    assert progress.progress == 0
    assert progress.completed_modules == []
    assert progress.started_at is not None


def test_reconcile_skips_inactive_and_non_student_roles(db, service, course, make_user, organization):
    dropped = make_user("dropped@example.org", organization, "beneficiary")
    teacher = make_user("teacher@example.org", organization, "volunteer")
    db.add(UserCourseRole(user_id=dropped.id, course_id=course.id, role="student", is_active=False))
    db.add(UserCourseRole(user_id=teacher.id, course_id=course.id, role="instructor", is_active=True))
    db.commit()

    summary = service.reconcile_enrollments(course.id, db)

    assert summary["progress_created"] == 0
    assert db.query(UserCourseProgress).count() == 0


def test_reconcile_keeps_withdrawn_role_with_progress(db, service, course, learner):
    db.add(UserCourseProgress(user_id=learner.id, course_id=course.id, completed_modules=[]))
    db.add(UserCourseRole(user_id=learner.id, course_id=course.id, role="student", is_active=False))
    db.commit()

    summary = service.reconcile_enrollments(course.id, db)

    assert summary == {"roles_created": 0, "progress_created": 0, "failed": 0}
    role = db.query(UserCourseRole).filter_by(user_id=learner.id, course_id=course.id).one()
    assert role.is_active is False


def test_reconcile_is_idempotent(db, service, course, learner, make_user, organization):
    other = make_user("joao@example.org", organization, "beneficiary")
    db.add(UserCourseProgress(user_id=learner.id, course_id=course.id, completed_modules=[]))
    db.add(UserCourseRole(user_id=other.id, course_id=course.id, role="student", is_active=True))
    db.commit()

    service.reconcile_enrollments(course.id, db)
    second = service.reconcile_enrollments(course.id, db)

    assert second == {"roles_created": 0, "progress_created": 0, "failed": 0}
    assert db.query(UserCourseRole).filter_by(course_id=course.id).count() == 2
    assert db.query(UserCourseProgress).filter_by(course_id=course.id).count() == 2


def test_list_course_enrollments_reconciles_first(db, service, course, learner, organization):
    db.add(UserCourseProgress(user_id=learner.id, course_id=course.id, progress=25, completed_modules=[]))
    db.commit()

    enrollments = service.list_course_enrollments(course.id, organization.id, db)

    assert len(enrollments) == 1
    entry = enrollments[0]
    assert entry["user_id"] == learner.id
    assert entry["email"] == learner.email
    assert entry["role"] == "student"
    assert entry["progress_percent"] == 25
    assert entry["status"] == "in_progress"
    assert entry["is_active"] is True


def test_enroll_twice_keeps_single_rows(db, service, course, learner, organization):
    service.enroll(learner.id, course.id, organization.id, db)
    result = service.enroll(learner.id, course.id, organization.id, db)

    assert result["role"] == "student"
    assert db.query(UserCourseRole).filter_by(user_id=learner.id, course_id=course.id).count() == 1
    assert db.query(UserCourseProgress).filter_by(user_id=learner.id, course_id=course.id).count() == 1


def test_enroll_rejects_active_instructor(db, service, course, admin, organization):
    service.assign_role(course.id, admin.id, "instructor", organization.id, db)

    with pytest.raises(PreconditionFailedError):
        service.enroll(admin.id, course.id, organization.id, db)


def test_assign_role_upserts(db, service, course, learner, admin, organization):
    service.assign_role(course.id, learner.id, "observer", organization.id, db, assigned_by=admin.id)
    role = service.assign_role(course.id, learner.id, "student", organization.id, db,
                               assigned_by=admin.id, notes="moved to student")

    assert role.role == "student"
    assert role.notes == "moved to student"
    assert db.query(UserCourseRole).filter_by(user_id=learner.id, course_id=course.id).count() == 1
    assert db.query(UserCourseProgress).filter_by(user_id=learner.id, course_id=course.id).count() == 1


def test_assign_role_requires_organization_member(db, service, course, make_user, other_organization,
                                                  organization):
    outsider = make_user("outsider@example.org", other_organization, "volunteer")

    with pytest.raises(UserNotFoundError):
        service.assign_role(course.id, outsider.id, "student", organization.id, db)
