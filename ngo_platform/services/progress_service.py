# ==============================================================================
# services/progress_service.py - Module completion & course progress
# ==============================================================================

import logging
from typing import Dict, Any, Optional

from sqlalchemy.orm import Session

from ..models import CourseModule, UserCourseProgress, utcnow
from ..utils.logging import log_database_operation
from .course_service import CourseService
from .grading_service import round_half_up

logger = logging.getLogger(__name__)


def serialize_progress(progress: Optional[UserCourseProgress]) -> Optional[Dict[str, Any]]:
    if progress is None:
        return None
    return {
        "user_id": progress.user_id,
        "course_id": progress.course_id,
        "status": progress.status,
        "progress": progress.progress,
        "completed_modules": list(progress.completed_modules or []),
        "started_at": progress.started_at.isoformat() if progress.started_at else None,
        "last_accessed_at": progress.last_accessed_at.isoformat() if progress.last_accessed_at else None,
        "completed_at": progress.completed_at.isoformat() if progress.completed_at else None,
        "certificate_generated": bool(progress.certificate_generated),
    }


class ProgressService:
    """Tracks which modules a learner finished and the derived percentage"""

    def __init__(self, course_service: CourseService = None):
        self.course_service = course_service or CourseService()

    @log_database_operation(logger, "mark module complete")
    def mark_module_complete(self, user_id: int, course_id: int, module_id: int,
                             organization_id: int, db: Session) -> UserCourseProgress:
        self.course_service.get_course(course_id, organization_id, db)
        self.course_service.get_module(module_id, organization_id, db, course_id=course_id)

        now = utcnow()
        progress = db.query(UserCourseProgress).filter_by(user_id=user_id, course_id=course_id).first()
        if progress is None:
            progress = UserCourseProgress(
                user_id=user_id, course_id=course_id, status="in_progress", progress=0,
                completed_modules=[], started_at=now,
            )
            db.add(progress)

        completed = list(progress.completed_modules or [])
        if module_id not in completed:
            completed.append(module_id)
        # assign a new list so the JSON column is flagged dirty
        progress.completed_modules = completed
        progress.last_accessed_at = now

        total_modules = db.query(CourseModule).filter(CourseModule.course_id == course_id).count()
        progress.progress = int(round_half_up(100 * len(completed) / total_modules)) if total_modules else 0
        progress.progress = min(progress.progress, 100)

        if progress.progress >= 100 and progress.status != "completed":
            progress.status = "completed"
            progress.completed_at = now
            logger.info(f"User {user_id} completed course {course_id}")

        db.commit()
        return progress

    def get_progress(self, user_id: int, course_id: int, organization_id: int,
                     db: Session) -> Optional[UserCourseProgress]:
        self.course_service.get_course(course_id, organization_id, db)
        return db.query(UserCourseProgress).filter_by(user_id=user_id, course_id=course_id).first()
