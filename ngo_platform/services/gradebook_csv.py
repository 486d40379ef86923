# ==============================================================================
# services/gradebook_csv.py - Gradebook CSV import/export
# ==============================================================================

import io
import logging
import os
from typing import List, Dict, Any

import pandas as pd
from sqlalchemy.orm import Session

from ..config.settings import Settings
from ..exceptions import InvalidFileError, NGOPlatformBaseException
from ..models import (
    Certificate, CourseModule, User, UserCourseProgress, UserCourseRole, UserGrade,
)
from ..utils.logging import LoggingContext
from .course_service import CourseService
from .grading_service import GradingService

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    return pd.isna(value) or str(value).strip() == '' or str(value).strip().lower() == 'nan'


class GradebookCSVProcessor:
    """Exports a course gradebook and imports instructor grades with pandas"""

    def __init__(self, course_service: CourseService = None, grading_service: GradingService = None):
        self.course_service = course_service or CourseService()
        self.grading_service = grading_service or GradingService(self.course_service)

    def build_gradebook(self, course_id: int, organization_id: int, db: Session) -> pd.DataFrame:
        """One row per active student, one column per module grade"""
        course = self.course_service.get_course(course_id, organization_id, db)
        modules = db.query(CourseModule).filter(
            CourseModule.course_id == course_id
        ).order_by(CourseModule.order_index).all()

        students = db.query(User).join(UserCourseRole, UserCourseRole.user_id == User.id).filter(
            UserCourseRole.course_id == course_id,
            UserCourseRole.role == "student",
            UserCourseRole.is_active.is_(True),
        ).order_by(User.name).all()

        progress_by_user = {
            p.user_id: p for p in db.query(UserCourseProgress).filter_by(course_id=course_id).all()
        }
        certificates = {
            c.user_id: c.certificate_number for c in db.query(Certificate).filter_by(course_id=course_id).all()
        }
        grades = db.query(UserGrade).filter(UserGrade.course_id == course_id).all()
        module_grades = {(g.user_id, g.module_id): g.grade_scale for g in grades if g.grade_type == "module"}

        rows = []
        for student in students:
            progress = progress_by_user.get(student.id)
            row = {
                "email": student.email,
                "name": student.name,
                "progress": progress.progress if progress else 0,
                "status": progress.status if progress else "not_started",
            }
            for module in modules:
                row[module.title] = module_grades.get((student.id, module.id))
            latest = self.grading_service.latest_course_grade(student.id, course.id, db)
            row["final_grade"] = latest.grade_scale if latest else None
            row["certificate_number"] = certificates.get(student.id)
            rows.append(row)

        columns = ["email", "name", "progress", "status"] + [m.title for m in modules] + [
            "final_grade", "certificate_number"
        ]
        return pd.DataFrame(rows, columns=columns)

    def export_gradebook(self, course_id: int, organization_id: int, db: Session) -> str:
        df = self.build_gradebook(course_id, organization_id, db)
        logger.info(f"Exported gradebook for course {course_id} with {len(df)} students")
        return df.to_csv(index=False)

    def read_csv(self, filename: str, contents: bytes) -> pd.DataFrame:
        """Validate and parse an uploaded CSV into a DataFrame"""
        extension = os.path.splitext(filename or "")[1].lower()
        if extension not in Settings.ALLOWED_EXTENSIONS:
            raise InvalidFileError("Only CSV files are allowed")
        if len(contents) > Settings.MAX_FILE_SIZE:
            raise InvalidFileError(f"File exceeds {Settings.MAX_FILE_SIZE} bytes")

        try:
            csv_io = io.StringIO(contents.decode("utf-8"))
            df = pd.read_csv(csv_io, header=0)
        except UnicodeDecodeError:
            csv_io = io.StringIO(contents.decode("latin-1"))
            df = pd.read_csv(csv_io, header=0)
        except pd.errors.EmptyDataError:
            raise InvalidFileError("CSV file is empty")
        except Exception as e:
            raise InvalidFileError(f"Error reading CSV file: {str(e)}")

        if df.empty or len(df) < Settings.MIN_ROWS:
            raise InvalidFileError("CSV file is empty")

        df.columns = [str(col).strip().lower() for col in df.columns]
        missing = [c for c in Settings.REQUIRED_GRADE_COLUMNS if c not in df.columns]
        if missing:
            raise InvalidFileError(f"Missing columns: {missing}")
        return df

    def import_grades(self, course_id: int, filename: str, contents: bytes, organization_id: int,
                      db: Session, graded_by: int = None) -> Dict[str, Any]:
        """
        Import ``email, grade[, feedback]`` rows as course grades.

        Invalid rows are reported and skipped; valid rows are committed together.
        """
        self.course_service.get_course(course_id, organization_id, db)
        df = self.read_csv(filename, contents)

        imported = 0
        errors: List[Dict[str, Any]] = []
        for index, row in df.iterrows():
            line = index + 2  # header is line 1
            email = "" if _is_empty(row["email"]) else str(row["email"]).strip().lower()
            if not email:
                errors.append({"row": line, "email": None, "error": "Missing email"})
                continue

            user = db.query(User).filter_by(email=email).first()
            if not user:
                errors.append({"row": line, "email": email, "error": "Unknown user"})
                continue

            feedback = None
            if "feedback" in df.columns and not _is_empty(row["feedback"]):
                feedback = str(row["feedback"]).strip()

            try:
                self.grading_service.record_course_grade(
                    course_id, user.id, row["grade"], organization_id, db,
                    feedback=feedback, graded_by=graded_by, commit=False,
                )
                imported += 1
            except NGOPlatformBaseException as e:
                errors.append({"row": line, "email": email, "error": e.message})

        db.commit()
        with LoggingContext(logger, course_id=course_id, graded_by=graded_by) as log:
            log.info(f"Imported {imported} grades, skipped {len(errors)} rows")
            for error in errors:
                log.debug(f"Skipped row {error['row']}: {error['error']}")
        return {"imported": imported, "skipped": len(errors), "errors": errors, "total_rows": len(df)}
