# ==============================================================================
# services/certificate_service.py - Certificate eligibility & issuance
# ==============================================================================

"""
Eligibility is a chain of preconditions that stops at the first failure:

1. the course exists in the caller's organization;
2. certificates are enabled for it;
3. no certificate was issued yet for (user, course);
4. the branch rule for the course type:
   - in_person / hybrid: the latest instructor grade exists and passed;
   - online: every module that carries a form has a submission and the
     aggregated score reaches the course's ``pass_score``.

Reasons are returned verbatim to API callers.
"""

import logging
import secrets
from typing import Dict, Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import (
    CertificateAlreadyIssuedError, CertificateNotEligibleError, CertificateNotFoundError,
)
from ..models import (
    Certificate, Course, CourseModule, User, UserCourseProgress, UserModuleFormSubmission, utcnow,
)
from ..utils.logging import log_database_operation
from .course_service import CourseService, form_fields
from .grading_service import GradingService, round_half_up

logger = logging.getLogger(__name__)

REASON_DISABLED = "certificates disabled for this course"
REASON_ALREADY_ISSUED = "already issued"
REASON_AWAITING_GRADE = "awaiting grade"
REASON_NO_GRADABLE_CONTENT = "no gradable content"
REASON_PENDING_SUBMISSIONS = "pending form submissions"

# Excludes 0/O and 1/I/L
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 10


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_certificate_number(year: int = None) -> str:
    year = year or utcnow().year
    return f"CERT-{year}-{_random_code(8)}"


def generate_verification_code() -> str:
    return "-".join(_random_code(4) for _ in range(3))


def _format_number(value: float) -> str:
    """70.0 -> '70', 66.67 -> '66.67'"""
    value = round(value, 2)
    return str(int(value)) if value == int(value) else str(value)


def serialize_certificate(certificate: Certificate) -> Dict[str, Any]:
    return {
        "id": certificate.id,
        "user_id": certificate.user_id,
        "course_id": certificate.course_id,
        "certificate_number": certificate.certificate_number,
        "verification_code": certificate.verification_code,
        "final_score": certificate.final_score,
        "issued_at": certificate.issued_at.isoformat() if certificate.issued_at else None,
    }


class CertificateService:
    """Service for certificate eligibility, issuance and public verification"""

    def __init__(self, course_service: CourseService = None, grading_service: GradingService = None):
        self.course_service = course_service or CourseService()
        self.grading_service = grading_service or GradingService(self.course_service)

    def check_certificate_eligibility(self, user_id: int, course_id: int, organization_id: int,
                                      db: Session) -> Dict[str, Any]:
        """
        Decide whether the user may receive a certificate for the course.

        Returns:
            Dict with ``eligible`` and, depending on the branch, ``reason``
            and ``completion_summary``

        Raises:
            CourseNotFoundError: the course is not in the organization
        """
        course = self.course_service.get_course(course_id, organization_id, db)

        if not course.certificate_enabled:
            return {"eligible": False, "reason": REASON_DISABLED}

        if self._find_certificate(user_id, course_id, db):
            return {"eligible": False, "reason": REASON_ALREADY_ISSUED}

        if course.course_type in ("in_person", "hybrid"):
            return self._check_instructor_graded(user_id, course, db)
        return self._check_module_scores(user_id, course, db)

    def _check_instructor_graded(self, user_id: int, course: Course, db: Session) -> Dict[str, Any]:
        pass_grade = course.pass_score / 10
        grade = self.grading_service.latest_course_grade(user_id, course.id, db)
        if grade is None:
            return {"eligible": False, "reason": REASON_AWAITING_GRADE}

        summary = {
            "type": "instructor_graded",
            "final_grade": grade.grade_scale,
            "passed": grade.passed,
            "feedback": grade.feedback,
            "graded_at": grade.graded_at.isoformat() if grade.graded_at else None,
            "pass_grade": pass_grade,
        }
        if not grade.passed:
            return {"eligible": False, "reason": f"grade below {pass_grade}", "completion_summary": summary}
        return {"eligible": True, "completion_summary": summary}

    def _check_module_scores(self, user_id: int, course: Course, db: Session) -> Dict[str, Any]:
        modules = db.query(CourseModule).filter(CourseModule.course_id == course.id).all()
        gated_ids = [m.id for m in modules if form_fields(m)]
        if not gated_ids:
            return {"eligible": False, "reason": REASON_NO_GRADABLE_CONTENT}

        submissions = db.query(UserModuleFormSubmission).filter(
            UserModuleFormSubmission.user_id == user_id,
            UserModuleFormSubmission.module_id.in_(gated_ids),
        ).all()

        total_score = sum(s.score or 0 for s in submissions)
        total_max = sum(s.max_score or 0 for s in submissions)
        overall = round_half_up(total_score / total_max * 100, 2) if total_max > 0 else 0.0
        summary = {
            "type": "module_scores",
            "overall_percentage": overall,
            "pass_score": course.pass_score,
            "total_score": total_score,
            "total_max_score": total_max,
            "graded_modules": len(submissions),
            "required_modules": len(gated_ids),
        }

        if len(submissions) < len(gated_ids):
            return {"eligible": False, "reason": REASON_PENDING_SUBMISSIONS, "completion_summary": summary}

        # compare the exact ratio; overall is rounded for display only
        meets_pass_score = (total_score * 100 >= course.pass_score * total_max) if total_max > 0 \
            else course.pass_score <= 0
        if not meets_pass_score:
            reason = (f"grade insufficient: {_format_number(overall)}% "
                      f"(minimum {_format_number(course.pass_score)}%)")
            return {"eligible": False, "reason": reason, "completion_summary": summary}
        return {"eligible": True, "completion_summary": summary}

    @log_database_operation(logger, "issue certificate")
    def issue_certificate(self, user_id: int, course_id: int, organization_id: int,
                          db: Session) -> Certificate:
        """
        Issue the certificate once the eligibility check passes.

        Raises:
            CertificateAlreadyIssuedError: a certificate exists for the pair
            CertificateNotEligibleError: carries the eligibility reason
        """
        eligibility = self.check_certificate_eligibility(user_id, course_id, organization_id, db)
        if not eligibility["eligible"]:
            if eligibility.get("reason") == REASON_ALREADY_ISSUED:
                raise CertificateAlreadyIssuedError(user_id, course_id)
            raise CertificateNotEligibleError(eligibility["reason"], eligibility.get("completion_summary"))

        certificate = Certificate(
            user_id=user_id,
            course_id=course_id,
            certificate_number=self._unique_value(db, Certificate.certificate_number,
                                                  generate_certificate_number),
            verification_code=self._unique_value(db, Certificate.verification_code,
                                                 generate_verification_code),
            final_score=self._final_score(eligibility.get("completion_summary")),
            issued_at=utcnow(),
        )
        db.add(certificate)

        progress = db.query(UserCourseProgress).filter_by(user_id=user_id, course_id=course_id).first()
        if progress is not None:
            progress.certificate_generated = True

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Concurrent certificate issuance for user {user_id}, course {course_id}: {e}")
            raise CertificateAlreadyIssuedError(user_id, course_id) from e

        logger.info(f"Issued certificate {certificate.certificate_number} to user {user_id}")
        return certificate

    @staticmethod
    def _final_score(summary: Optional[Dict[str, Any]]) -> Optional[float]:
        if not summary:
            return None
        if summary.get("type") == "instructor_graded":
            return summary.get("final_grade")
        return summary.get("overall_percentage")

    @staticmethod
    def _unique_value(db: Session, column, generator) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            value = generator()
            if not db.query(Certificate.id).filter(column == value).first():
                return value
        # The unique constraint still rejects a collision at commit
        return generator()

    def _find_certificate(self, user_id: int, course_id: int, db: Session) -> Optional[Certificate]:
        return db.query(Certificate).filter_by(user_id=user_id, course_id=course_id).first()

    def get_certificate(self, user_id: int, course_id: int, organization_id: int,
                        db: Session) -> Certificate:
        self.course_service.get_course(course_id, organization_id, db)
        certificate = self._find_certificate(user_id, course_id, db)
        if not certificate:
            raise CertificateNotFoundError(f"user {user_id}, course {course_id}")
        return certificate

    def verify_certificate(self, verification_code: str, db: Session) -> Dict[str, Any]:
        """Public lookup by verification code"""
        code = (verification_code or "").strip().upper()
        row = db.query(Certificate, User, Course).join(
            User, User.id == Certificate.user_id
        ).join(Course, Course.id == Certificate.course_id).filter(
            Certificate.verification_code == code
        ).first()
        if not row:
            raise CertificateNotFoundError(code)

        certificate, user, course = row
        return {
            "valid": True,
            "certificate_number": certificate.certificate_number,
            "verification_code": certificate.verification_code,
            "holder_name": user.name,
            "course_title": course.title,
            "organization": course.organization.name if course.organization else None,
            "issued_at": certificate.issued_at.isoformat() if certificate.issued_at else None,
            "final_score": certificate.final_score,
        }
