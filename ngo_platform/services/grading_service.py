# ==============================================================================
# services/grading_service.py - Graded module forms & instructor grades
# ==============================================================================

"""
Two sources of grades feed certificate eligibility:

- learners submit module forms, which are scored automatically against the
  ``correctAnswer``/``points`` of each form field and mirrored into a
  ``module`` UserGrade;
- instructors enter ``course``/``final`` grades on the 1.0-10.0 scale for
  in-person and hybrid courses.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from ..config.settings import Settings
from ..exceptions import (
    InvalidAnswersError, InvalidGradeError, PreconditionFailedError, UserNotFoundError,
)
from ..models import CourseModule, User, UserGrade, UserModuleFormSubmission, utcnow
from ..utils.auth import find_active_role
from ..utils.logging import log_database_operation
from .course_service import CourseService, form_fields

logger = logging.getLogger(__name__)

COURSE_GRADE_TYPES = ("course", "final")
TRUE_VALUES = ("true", "on")


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero (12.5 -> 13) instead of to the even neighbour"""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return False


def _points(field: Dict[str, Any]) -> float:
    try:
        return float(field.get("points") or 0)
    except (TypeError, ValueError):
        return 0.0


def is_gradable(field: Dict[str, Any]) -> bool:
    """A field counts toward the score when it has a correct answer and positive points"""
    return field.get("correctAnswer") is not None and _points(field) > 0


def answer_matches(field_type: str, user_answer: Any, correct_answer: Any) -> bool:
    """Type-specific comparison of a learner answer against the correct one"""
    if user_answer is None:
        return False

    if field_type == "checkbox":
        if isinstance(correct_answer, (list, tuple)):
            if not isinstance(user_answer, (list, tuple)):
                return False
            return {str(a) for a in user_answer} == {str(c) for c in correct_answer}
        return _to_bool(user_answer) == _to_bool(correct_answer)

    if field_type in ("text", "textarea"):
        candidates = correct_answer if isinstance(correct_answer, (list, tuple)) else [correct_answer]
        given = str(user_answer).strip().lower()
        return any(given == str(c).strip().lower() for c in candidates)

    # radio / select
    if isinstance(correct_answer, (list, tuple)):
        return user_answer in correct_answer or str(user_answer) in [str(c) for c in correct_answer]
    return str(user_answer) == str(correct_answer)


def percentage_to_grade_scale(percentage: float) -> float:
    """Linear map of 0-100% onto the 1.0-10.0 grade scale, one decimal"""
    grade = round_half_up((percentage / 100 * 9 + 1) * 10) / 10
    return max(Settings.MIN_GRADE_SCALE, min(Settings.MAX_GRADE_SCALE, grade))


def validate_responses(fields: List[Dict[str, Any]], responses: Any) -> Dict[str, Any]:
    """Reject malformed payloads before anything is scored"""
    if not isinstance(responses, dict):
        raise InvalidAnswersError("responses must be an object mapping field ids to answers")
    for key in responses:
        if not isinstance(key, str):
            raise InvalidAnswersError(f"field id {key!r} is not a string")

    for field in fields:
        if field.get("required") and _is_blank(responses.get(str(field.get("id")))):
            label = field.get("label") or field.get("id")
            raise InvalidAnswersError(f"missing answer for required field '{label}'")
    return responses


def score_form(fields: List[Dict[str, Any]], responses: Dict[str, Any]) -> Dict[str, Any]:
    """Score validated responses; returns totals and per-field results"""
    score = 0.0
    max_score = 0.0
    detailed_results = []

    for field in fields:
        if not is_gradable(field):
            continue
        field_id = str(field.get("id"))
        field_type = field.get("type") or "text"
        points = _points(field)
        user_answer = responses.get(field_id)
        correct_answer = field.get("correctAnswer")

        is_correct = answer_matches(field_type, user_answer, correct_answer)
        earned = points if is_correct else 0.0
        score += earned
        max_score += points

        detailed_results.append({
            "field_id": field_id,
            "field_label": field.get("label"),
            "field_type": field_type,
            "user_answer": user_answer,
            "correct_answer": correct_answer,
            "is_correct": is_correct,
            "points_earned": earned,
            "points_total": points,
        })

    percentage = (score / max_score * 100) if max_score > 0 else 0.0
    return {
        "score": score,
        "max_score": max_score,
        "percentage": round_half_up(percentage, 2),
        "passed": percentage >= Settings.FORM_PASS_PERCENTAGE,
        "grade_scale": percentage_to_grade_scale(percentage),
        "correct_answers": sum(1 for r in detailed_results if r["is_correct"]),
        "total_questions": len(detailed_results),
        "detailed_results": detailed_results,
    }


def serialize_submission(submission: Optional[UserModuleFormSubmission]) -> Optional[Dict[str, Any]]:
    if submission is None:
        return None
    answers = submission.answers or {}
    detailed = answers.get("detailed_results") or []
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "module_id": submission.module_id,
        "responses": answers.get("responses") or {},
        "detailed_results": detailed,
        "score": submission.score,
        "max_score": submission.max_score,
        "percentage": round_half_up(submission.score / submission.max_score * 100, 2) if submission.max_score else 0.0,
        "passed": submission.passed,
        "correct_answers": sum(1 for r in detailed if r.get("is_correct")),
        "total_questions": len(detailed),
        "submitted_at": submission.submitted_at.isoformat() if submission.submitted_at else None,
    }


def serialize_grade(grade: UserGrade, user: Optional[User] = None) -> Dict[str, Any]:
    data = {
        "id": grade.id,
        "user_id": grade.user_id,
        "course_id": grade.course_id,
        "module_id": grade.module_id,
        "grade_type": grade.grade_type,
        "grade_scale": grade.grade_scale,
        "passed": grade.passed,
        "feedback": grade.feedback,
        "graded_by": grade.graded_by,
        "graded_at": grade.graded_at.isoformat() if grade.graded_at else None,
    }
    if user is not None:
        data["name"] = user.name
        data["email"] = user.email
    return data


class GradingService:
    """Service for form submissions and instructor grades"""

    def __init__(self, course_service: CourseService = None):
        self.course_service = course_service or CourseService()

    @log_database_operation(logger, "submit module form")
    def submit_module_form(self, user_id: int, module_id: int, responses: Any,
                           organization_id: int, db: Session) -> Dict[str, Any]:
        module = self.course_service.get_module(module_id, organization_id, db)
        fields = form_fields(module)
        if not fields:
            raise PreconditionFailedError("module has no form", "MODULE_HAS_NO_FORM",
                                          {"module_id": module_id})

        responses = validate_responses(fields, responses)
        result = score_form(fields, responses)
        now = utcnow()

        submission = db.query(UserModuleFormSubmission).filter_by(
            user_id=user_id, module_id=module_id
        ).first()
        if submission is None:
            submission = UserModuleFormSubmission(user_id=user_id, module_id=module_id)
            db.add(submission)
        submission.answers = {"responses": responses, "detailed_results": result["detailed_results"]}
        submission.score = result["score"]
        submission.max_score = result["max_score"]
        submission.passed = result["passed"]
        submission.submitted_at = now

        self._upsert_module_grade(user_id, module, result, now, db)
        db.commit()
        logger.info(f"User {user_id} submitted module {module_id}: "
                    f"{result['score']}/{result['max_score']} ({result['percentage']}%)")

        return {"submission": serialize_submission(submission), **result}

    def _upsert_module_grade(self, user_id: int, module: CourseModule, result: Dict[str, Any],
                             graded_at, db: Session) -> UserGrade:
        grade = db.query(UserGrade).filter_by(
            user_id=user_id, course_id=module.course_id, module_id=module.id, grade_type="module"
        ).first()
        if grade is None:
            grade = UserGrade(user_id=user_id, course_id=module.course_id, module_id=module.id,
                              grade_type="module")
            db.add(grade)
        grade.grade_scale = result["grade_scale"]
        grade.passed = result["passed"]
        grade.graded_at = graded_at
        return grade

    def get_submission(self, user_id: int, module_id: int, organization_id: int,
                       db: Session) -> Optional[UserModuleFormSubmission]:
        self.course_service.get_module(module_id, organization_id, db)
        return db.query(UserModuleFormSubmission).filter_by(user_id=user_id, module_id=module_id).first()

    @log_database_operation(logger, "record course grade")
    def record_course_grade(self, course_id: int, user_id: int, grade_scale: float,
                            organization_id: int, db: Session, feedback: Optional[str] = None,
                            grade_type: str = "course", passed: Optional[bool] = None,
                            graded_by: Optional[int] = None, commit: bool = True) -> UserGrade:
        """
        Enter or replace an instructor grade for a learner.

        ``passed`` defaults to ``grade_scale >= pass_score / 10``.
        """
        course = self.course_service.get_course(course_id, organization_id, db)

        try:
            grade_scale = float(grade_scale)
        except (TypeError, ValueError):
            raise InvalidGradeError(grade_scale, "not a number")
        if not Settings.MIN_GRADE_SCALE <= grade_scale <= Settings.MAX_GRADE_SCALE:
            raise InvalidGradeError(
                grade_scale, f"must be between {Settings.MIN_GRADE_SCALE} and {Settings.MAX_GRADE_SCALE}"
            )
        if grade_type not in COURSE_GRADE_TYPES:
            raise InvalidGradeError(grade_type, "grade type must be 'course' or 'final'")

        user = db.get(User, user_id)
        if not user or (not user.is_global_admin and not find_active_role(user_id, organization_id, db)):
            raise UserNotFoundError(user_id)

        if passed is None:
            passed = grade_scale >= course.pass_score / 10

        grade = db.query(UserGrade).filter_by(
            user_id=user_id, course_id=course_id, module_id=None, grade_type=grade_type
        ).first()
        if grade is None:
            grade = UserGrade(user_id=user_id, course_id=course_id, grade_type=grade_type)
            db.add(grade)
        grade.grade_scale = grade_scale
        grade.passed = passed
        grade.feedback = feedback
        grade.graded_by = graded_by
        grade.graded_at = utcnow()

        if commit:
            db.commit()
        else:
            db.flush()
        logger.info(f"Recorded {grade_type} grade {grade_scale} for user {user_id} on course {course_id}")
        return grade

    def latest_course_grade(self, user_id: int, course_id: int, db: Session) -> Optional[UserGrade]:
        return db.query(UserGrade).filter(
            UserGrade.user_id == user_id,
            UserGrade.course_id == course_id,
            UserGrade.grade_type.in_(COURSE_GRADE_TYPES),
        ).order_by(UserGrade.graded_at.desc(), UserGrade.id.desc()).first()

    def list_course_grades(self, course_id: int, organization_id: int, db: Session) -> List[Dict[str, Any]]:
        self.course_service.get_course(course_id, organization_id, db)
        rows = db.query(UserGrade, User).join(User, User.id == UserGrade.user_id).filter(
            UserGrade.course_id == course_id,
            UserGrade.grade_type.in_(COURSE_GRADE_TYPES),
        ).order_by(User.name, UserGrade.graded_at.desc()).all()
        return [serialize_grade(grade, user) for grade, user in rows]

    def list_module_grades(self, user_id: int, course_id: int, organization_id: int,
                           db: Session) -> List[Dict[str, Any]]:
        """The caller's per-module grades, in module order"""
        self.course_service.get_course(course_id, organization_id, db)
        rows = db.query(UserGrade, CourseModule).join(
            CourseModule, CourseModule.id == UserGrade.module_id
        ).filter(
            UserGrade.user_id == user_id,
            UserGrade.course_id == course_id,
            UserGrade.grade_type == "module",
        ).order_by(CourseModule.order_index).all()
        return [{**serialize_grade(grade), "module_title": module.title} for grade, module in rows]
