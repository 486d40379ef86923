# ==============================================================================
# services/course_service.py - Course catalogue
# ==============================================================================

import logging
from typing import List, Dict, Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..exceptions import CourseNotFoundError, CourseModuleNotFoundError
from ..models import Course, CourseModule, UserCourseProgress, UserCourseRole
from ..utils.logging import log_database_operation

logger = logging.getLogger(__name__)


def serialize_course(course: Course) -> Dict[str, Any]:
    return {
        "id": course.id,
        "organization_id": course.organization_id,
        "title": course.title,
        "description": course.description,
        "category": course.category,
        "course_type": course.course_type,
        "pass_score": course.pass_score,
        "certificate_enabled": course.certificate_enabled,
        "duration_hours": course.duration_hours,
        "status": course.status,
        "created_at": course.created_at.isoformat() if course.created_at else None,
    }


def serialize_module(module: CourseModule) -> Dict[str, Any]:
    return {
        "id": module.id,
        "course_id": module.course_id,
        "title": module.title,
        "description": module.description,
        "order_index": module.order_index,
        "content": module.content or {},
        "duration": module.duration,
        "is_required": module.is_required,
        "has_form": bool(form_fields(module)),
    }


def form_fields(module: CourseModule) -> List[Dict[str, Any]]:
    """All fields of the module's form blocks, in block order"""
    content = module.content or {}
    blocks = content.get("blocks") if isinstance(content, dict) else None
    fields = []
    for block in blocks or []:
        if isinstance(block, dict) and block.get("type") == "form":
            fields.extend(f for f in block.get("formFields") or [] if isinstance(f, dict))
    return fields


class CourseService:
    """Service for courses and their modules"""

    def get_course(self, course_id: int, organization_id: int, db: Session) -> Course:
        """Fetch a course, treating other organizations' courses as missing"""
        course = db.query(Course).filter_by(id=course_id, organization_id=organization_id).first()
        if not course:
            raise CourseNotFoundError(course_id)
        return course

    def get_module(self, module_id: int, organization_id: int, db: Session,
                   course_id: Optional[int] = None) -> CourseModule:
        query = db.query(CourseModule).join(Course, Course.id == CourseModule.course_id).filter(
            CourseModule.id == module_id,
            Course.organization_id == organization_id,
        )
        if course_id is not None:
            query = query.filter(CourseModule.course_id == course_id)
        module = query.first()
        if not module:
            raise CourseModuleNotFoundError(module_id)
        return module

    @log_database_operation(logger, "create course")
    def create_course(self, data: Dict[str, Any], organization_id: int, created_by: int,
                      db: Session) -> Course:
        course = Course(organization_id=organization_id, created_by=created_by, **data)
        db.add(course)
        db.commit()
        logger.info(f"Created course {course.id} '{course.title}' in organization {organization_id}")
        return course

    def get_course_detail(self, course_id: int, organization_id: int, db: Session) -> Dict[str, Any]:
        course = self.get_course(course_id, organization_id, db)
        return {**serialize_course(course), "modules": [serialize_module(m) for m in course.modules]}

    @log_database_operation(logger, "create module")
    def create_module(self, course_id: int, data: Dict[str, Any], organization_id: int,
                      db: Session) -> CourseModule:
        self.get_course(course_id, organization_id, db)

        data = dict(data)
        if data.get("order_index") is None:
            last_index = db.query(func.max(CourseModule.order_index)).filter(
                CourseModule.course_id == course_id
            ).scalar()
            data["order_index"] = 0 if last_index is None else last_index + 1
        if data.get("content") is None:
            data["content"] = {"blocks": []}

        module = CourseModule(course_id=course_id, **data)
        db.add(module)
        db.commit()
        return module

    def list_modules(self, course_id: int, organization_id: int, db: Session) -> List[Dict[str, Any]]:
        course = self.get_course(course_id, organization_id, db)
        return [serialize_module(m) for m in course.modules]

    def list_courses_with_status(self, user_id: int, organization_id: int, db: Session,
                                 enrollment_service=None) -> List[Dict[str, Any]]:
        """Organization courses, each with the caller's enrollment and progress"""
        courses = db.query(Course).filter_by(organization_id=organization_id).order_by(Course.id).all()

        results = []
        for course in courses:
            if enrollment_service is not None:
                enrollment_service.reconcile_enrollments(course.id, db)

            role = db.query(UserCourseRole).filter_by(user_id=user_id, course_id=course.id).first()
            progress = db.query(UserCourseProgress).filter_by(user_id=user_id, course_id=course.id).first()
            results.append({
                **serialize_course(course),
                "module_count": len(course.modules),
                "enrolled": bool(role and role.is_active),
                "course_role": role.role if role else None,
                "progress": progress.progress if progress else 0,
                "progress_status": progress.status if progress else None,
            })
        return results
