# ==============================================================================
# services/enrollment_service.py - Course enrollment and reconciliation
# ==============================================================================

"""
A learner counts as enrolled through two rows: an active ``student``
UserCourseRole and a UserCourseProgress record. Older code paths wrote only
one of them, so ``reconcile_enrollments`` runs before enrollment lists are
read and inserts whichever half is missing. The unique (user_id, course_id)
constraints keep concurrent passes from producing duplicates.
"""

import logging
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from ..exceptions import PreconditionFailedError, UserNotFoundError, log_exception
from ..models import User, UserCourseProgress, UserCourseRole, utcnow
from ..utils.auth import find_active_role
from ..utils.logging import log_database_operation
from .course_service import CourseService

logger = logging.getLogger(__name__)

RECONCILED_ROLE_NOTE = "Created automatically: progress record existed without a course role"


class EnrollmentService:
    """Service for course roles, enrollment and the reconciliation pass"""

    def __init__(self, course_service: CourseService = None):
        self.course_service = course_service or CourseService()

    def reconcile_enrollments(self, course_id: int, db: Session) -> Dict[str, int]:
        """
        Repair drift between course roles and progress records.

        Every insert commits on its own; a failing insert is rolled back,
        logged and skipped so one bad row never blocks the listing.

        A progress record whose user already holds an inactive or non-student
        role row is left unrepaired: that row records an explicit decision
        (a withdrawal or an instructor assignment) and is not overwritten.

        Returns:
            Dict with the number of role and progress rows created
        """
        summary = {"roles_created": 0, "progress_created": 0, "failed": 0}

        role_user_ids = {
            user_id for (user_id,) in
            db.query(UserCourseRole.user_id).filter(UserCourseRole.course_id == course_id).all()
        }
        orphan_progress = [
            p for p in db.query(UserCourseProgress).filter(UserCourseProgress.course_id == course_id).all()
            if p.user_id not in role_user_ids
        ]
        for progress in orphan_progress:
            role = UserCourseRole(
                user_id=progress.user_id,
                course_id=course_id,
                role="student",
                is_active=True,
                assigned_at=progress.created_at or utcnow(),
                notes=RECONCILED_ROLE_NOTE,
            )
            if self._commit_repair(db, role, f"student role for user {progress.user_id}"):
                summary["roles_created"] += 1
            else:
                summary["failed"] += 1

        progress_user_ids = {
            user_id for (user_id,) in
            db.query(UserCourseProgress.user_id).filter(UserCourseProgress.course_id == course_id).all()
        }
        students = db.query(UserCourseRole).filter(
            UserCourseRole.course_id == course_id,
            UserCourseRole.role == "student",
            UserCourseRole.is_active.is_(True),
        ).all()
        for student in students:
            if student.user_id in progress_user_ids:
                continue
            progress = self._new_progress(student.user_id, course_id)
            if self._commit_repair(db, progress, f"progress record for user {student.user_id}"):
                summary["progress_created"] += 1
            else:
                summary["failed"] += 1

        if summary["roles_created"] or summary["progress_created"] or summary["failed"]:
            logger.info(f"Reconciled course {course_id}: {summary}")
        return summary

    def _commit_repair(self, db: Session, row, description: str) -> bool:
        try:
            db.add(row)
            db.commit()
            return True
        except Exception as e:
            db.rollback()
            log_exception(e, f"reconciliation creating {description}")
            return False

    @staticmethod
    def _new_progress(user_id: int, course_id: int) -> UserCourseProgress:
        now = utcnow()
        return UserCourseProgress(
            user_id=user_id,
            course_id=course_id,
            status="in_progress",
            progress=0,
            completed_modules=[],
            started_at=now,
            last_accessed_at=now,
        )

    def list_course_enrollments(self, course_id: int, organization_id: int,
                                db: Session) -> List[Dict[str, Any]]:
        """Reconciled list of everyone holding a role on the course"""
        self.course_service.get_course(course_id, organization_id, db)
        self.reconcile_enrollments(course_id, db)

        rows = db.query(UserCourseRole, User).join(User, User.id == UserCourseRole.user_id).filter(
            UserCourseRole.course_id == course_id
        ).order_by(User.name).all()
        progress_by_user = {
            p.user_id: p for p in
            db.query(UserCourseProgress).filter(UserCourseProgress.course_id == course_id).all()
        }

        enrollments = []
        for course_role, user in rows:
            progress = progress_by_user.get(user.id)
            enrollments.append({
                "user_id": user.id,
                "name": user.name,
                "email": user.email,
                "role": course_role.role,
                "progress_percent": progress.progress if progress else 0,
                "status": progress.status if progress else "not_started",
                "is_active": course_role.is_active,
                "assigned_at": course_role.assigned_at.isoformat() if course_role.assigned_at else None,
            })
        return enrollments

    @log_database_operation(logger, "enroll")
    def enroll(self, user_id: int, course_id: int, organization_id: int, db: Session) -> Dict[str, Any]:
        """Self-enrollment as a student; calling it again changes nothing"""
        self.course_service.get_course(course_id, organization_id, db)

        course_role = db.query(UserCourseRole).filter_by(user_id=user_id, course_id=course_id).first()
        if course_role and course_role.is_active and course_role.role != "student":
            raise PreconditionFailedError(
                f"already assigned as {course_role.role}", "ENROLLMENT_CONFLICT",
                {"user_id": user_id, "course_id": course_id, "role": course_role.role},
            )
        if course_role is None:
            course_role = UserCourseRole(user_id=user_id, course_id=course_id, role="student",
                                         is_active=True, assigned_by=user_id)
            db.add(course_role)
        elif not course_role.is_active:
            course_role.role = "student"
            course_role.is_active = True
            course_role.assigned_at = utcnow()

        progress = self._ensure_progress(user_id, course_id, db)
        db.commit()
        logger.info(f"User {user_id} enrolled in course {course_id}")
        return {"role": course_role.role, "is_active": course_role.is_active,
                "progress": progress.progress, "status": progress.status}

    @log_database_operation(logger, "assign course role")
    def assign_role(self, course_id: int, user_id: int, role: str, organization_id: int,
                    db: Session, assigned_by: Optional[int] = None,
                    notes: Optional[str] = None) -> UserCourseRole:
        """Upsert the (user, course) role; students also get a progress record"""
        self.course_service.get_course(course_id, organization_id, db)
        user = db.get(User, user_id)
        if not user or (not user.is_global_admin and not find_active_role(user_id, organization_id, db)):
            raise UserNotFoundError(user_id)

        course_role = db.query(UserCourseRole).filter_by(user_id=user_id, course_id=course_id).first()
        if course_role is None:
            course_role = UserCourseRole(user_id=user_id, course_id=course_id)
            db.add(course_role)
        course_role.role = role
        course_role.is_active = True
        course_role.assigned_by = assigned_by
        course_role.assigned_at = utcnow()
        course_role.notes = notes

        if role == "student":
            self._ensure_progress(user_id, course_id, db)
        db.commit()
        logger.info(f"Assigned role '{role}' on course {course_id} to user {user_id}")
        return course_role

    def _ensure_progress(self, user_id: int, course_id: int, db: Session) -> UserCourseProgress:
        progress = db.query(UserCourseProgress).filter_by(user_id=user_id, course_id=course_id).first()
        if progress is None:
            progress = self._new_progress(user_id, course_id)
            db.add(progress)
            db.flush()
        return progress


def serialize_course_role(course_role: UserCourseRole) -> Dict[str, Any]:
    return {
        "user_id": course_role.user_id,
        "course_id": course_role.course_id,
        "role": course_role.role,
        "is_active": course_role.is_active,
        "assigned_by": course_role.assigned_by,
        "assigned_at": course_role.assigned_at.isoformat() if course_role.assigned_at else None,
        "notes": course_role.notes,
    }
