# ==============================================================================
# routes/courses.py - Course, enrollment, grading and certificate endpoints
# ==============================================================================

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import HTMLResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config.settings import Settings
from ..exceptions import (
    AuthorizationError, NGOPlatformBaseException, create_http_exception, to_http_exception,
)
from ..schemas import CourseCreate, CourseRoleAssign, FormSubmissionRequest, GradeCreate, ModuleCreate
from ..services import (
    GradingService, ProgressService, get_certificate_service, get_course_service,
    get_enrollment_service, get_gradebook_processor,
)
from ..services.certificate_service import serialize_certificate
from ..services.course_service import serialize_course, serialize_module
from ..services.enrollment_service import serialize_course_role
from ..services.grading_service import serialize_grade, serialize_submission
from ..services.progress_service import serialize_progress
from ..utils.auth import SessionContext, get_current_context, is_course_staff, require_staff
from ..utils.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize templates and services
settings = Settings()
templates = Jinja2Templates(directory=settings.TEMPLATES_DIR)
course_service = get_course_service()
enrollment_service = get_enrollment_service()
progress_service = ProgressService(course_service)
grading_service = GradingService(course_service)
certificate_service = get_certificate_service()
gradebook_processor = get_gradebook_processor()


def _require_course_staff(ctx: SessionContext, course_id: int, db: Session) -> None:
    if not is_course_staff(ctx, course_id, db):
        raise AuthorizationError("Course staff role required")


# ==============================================================================
# Courses & modules
# ==============================================================================

@router.get("/courses")
def list_courses(ctx: SessionContext = Depends(get_current_context), db: Session = Depends(get_db)):
    """Organization courses with the caller's enrollment status"""
    try:
        courses = course_service.list_courses_with_status(
            ctx.user_id, ctx.organization_id, db, enrollment_service=enrollment_service
        )
        return {"courses": courses}
    except Exception as e:
        logger.error(f"Error in list_courses: {e}")
        raise create_http_exception(500, f"Error retrieving courses: {str(e)}")


@router.post("/courses", status_code=201)
def create_course(body: CourseCreate, ctx: SessionContext = Depends(require_staff),
                  db: Session = Depends(get_db)):
    """Create a course in the current organization"""
    try:
        course = course_service.create_course(body.model_dump(), ctx.organization_id, ctx.user_id, db)
        return serialize_course(course)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in create_course: {e}")
        raise create_http_exception(500, f"Error creating course: {str(e)}")


@router.get("/courses/{course_id}")
def get_course(course_id: int, ctx: SessionContext = Depends(get_current_context),
               db: Session = Depends(get_db)):
    """Course with its modules"""
    try:
        return course_service.get_course_detail(course_id, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in get_course: {e}")
        raise create_http_exception(500, f"Error retrieving course: {str(e)}")


@router.get("/courses/{course_id}/modules")
def list_modules(course_id: int, ctx: SessionContext = Depends(get_current_context),
                 db: Session = Depends(get_db)):
    try:
        return {"modules": course_service.list_modules(course_id, ctx.organization_id, db)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in list_modules: {e}")
        raise create_http_exception(500, f"Error retrieving modules: {str(e)}")


@router.post("/courses/{course_id}/modules", status_code=201)
def create_module(course_id: int, body: ModuleCreate, ctx: SessionContext = Depends(require_staff),
                  db: Session = Depends(get_db)):
    try:
        module = course_service.create_module(course_id, body.model_dump(), ctx.organization_id, db)
        return serialize_module(module)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in create_module: {e}")
        raise create_http_exception(500, f"Error creating module: {str(e)}")


@router.get("/courses/{course_id}/modules/{module_id}")
def get_module(course_id: int, module_id: int, ctx: SessionContext = Depends(get_current_context),
               db: Session = Depends(get_db)):
    try:
        module = course_service.get_module(module_id, ctx.organization_id, db, course_id=course_id)
        return serialize_module(module)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in get_module: {e}")
        raise create_http_exception(500, f"Error retrieving module: {str(e)}")


# ==============================================================================
# Enrollment
# ==============================================================================

@router.post("/courses/{course_id}/enroll")
def enroll(course_id: int, ctx: SessionContext = Depends(get_current_context),
           db: Session = Depends(get_db)):
    """Enroll the caller as a student"""
    try:
        return enrollment_service.enroll(ctx.user_id, course_id, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in enroll: {e}")
        raise create_http_exception(500, f"Error enrolling in course: {str(e)}")


@router.post("/courses/{course_id}/assign")
def assign_course_role(course_id: int, body: CourseRoleAssign,
                       ctx: SessionContext = Depends(require_staff), db: Session = Depends(get_db)):
    """Assign a course role (student, instructor, assistant, observer) to a member"""
    try:
        course_role = enrollment_service.assign_role(
            course_id, body.user_id, body.role, ctx.organization_id, db,
            assigned_by=ctx.user_id, notes=body.notes,
        )
        return serialize_course_role(course_role)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in assign_course_role: {e}")
        raise create_http_exception(500, f"Error assigning course role: {str(e)}")


@router.get("/courses/{course_id}/enrollments")
def list_enrollments(course_id: int, ctx: SessionContext = Depends(get_current_context),
                     db: Session = Depends(get_db)):
    """Reconciled enrollment list for course staff"""
    try:
        _require_course_staff(ctx, course_id, db)
        return {"enrollments": enrollment_service.list_course_enrollments(course_id, ctx.organization_id, db)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in list_enrollments: {e}")
        raise create_http_exception(500, f"Error retrieving enrollments: {str(e)}")


# ==============================================================================
# Progress & form submissions
# ==============================================================================

@router.post("/courses/{course_id}/modules/{module_id}/complete")
def complete_module(course_id: int, module_id: int, ctx: SessionContext = Depends(get_current_context),
                    db: Session = Depends(get_db)):
    try:
        progress = progress_service.mark_module_complete(
            ctx.user_id, course_id, module_id, ctx.organization_id, db
        )
        return serialize_progress(progress)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in complete_module: {e}")
        raise create_http_exception(500, f"Error updating progress: {str(e)}")


@router.get("/courses/{course_id}/progress")
def get_progress(course_id: int, ctx: SessionContext = Depends(get_current_context),
                 db: Session = Depends(get_db)):
    try:
        progress = progress_service.get_progress(ctx.user_id, course_id, ctx.organization_id, db)
        return {"progress": serialize_progress(progress)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in get_progress: {e}")
        raise create_http_exception(500, f"Error retrieving progress: {str(e)}")


@router.get("/modules/{module_id}/form-submission")
def get_form_submission(module_id: int, ctx: SessionContext = Depends(get_current_context),
                        db: Session = Depends(get_db)):
    try:
        submission = grading_service.get_submission(ctx.user_id, module_id, ctx.organization_id, db)
        return {"submission": serialize_submission(submission)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in get_form_submission: {e}")
        raise create_http_exception(500, f"Error retrieving submission: {str(e)}")


@router.post("/modules/{module_id}/form-submission")
def submit_form(module_id: int, body: FormSubmissionRequest,
                ctx: SessionContext = Depends(get_current_context), db: Session = Depends(get_db)):
    """Score and store the caller's answers to the module form"""
    try:
        return grading_service.submit_module_form(ctx.user_id, module_id, body.responses,
                                                  ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in submit_form: {e}")
        raise create_http_exception(500, f"Error submitting form: {str(e)}")


# ==============================================================================
# Grades & gradebook
# ==============================================================================

@router.get("/courses/{course_id}/grades")
def list_course_grades(course_id: int, ctx: SessionContext = Depends(get_current_context),
                       db: Session = Depends(get_db)):
    try:
        _require_course_staff(ctx, course_id, db)
        return {"grades": grading_service.list_course_grades(course_id, ctx.organization_id, db)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in list_course_grades: {e}")
        raise create_http_exception(500, f"Error retrieving grades: {str(e)}")


@router.post("/courses/{course_id}/grades", status_code=201)
def record_grade(course_id: int, body: GradeCreate, ctx: SessionContext = Depends(get_current_context),
                 db: Session = Depends(get_db)):
    """Enter an instructor grade on the 1.0-10.0 scale"""
    try:
        _require_course_staff(ctx, course_id, db)
        grade = grading_service.record_course_grade(
            course_id, body.user_id, body.grade_scale, ctx.organization_id, db,
            feedback=body.feedback, grade_type=body.grade_type, passed=body.passed,
            graded_by=ctx.user_id,
        )
        return serialize_grade(grade)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in record_grade: {e}")
        raise create_http_exception(500, f"Error recording grade: {str(e)}")


@router.get("/courses/{course_id}/module-grades")
def list_module_grades(course_id: int, ctx: SessionContext = Depends(get_current_context),
                       db: Session = Depends(get_db)):
    try:
        grades = grading_service.list_module_grades(ctx.user_id, course_id, ctx.organization_id, db)
        return {"grades": grades}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in list_module_grades: {e}")
        raise create_http_exception(500, f"Error retrieving module grades: {str(e)}")


@router.get("/courses/{course_id}/gradebook.csv")
def export_gradebook(course_id: int, ctx: SessionContext = Depends(get_current_context),
                     db: Session = Depends(get_db)):
    try:
        _require_course_staff(ctx, course_id, db)
        content = gradebook_processor.export_gradebook(course_id, ctx.organization_id, db)
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="course_{course_id}_gradebook.csv"'},
        )
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in export_gradebook: {e}")
        raise create_http_exception(500, f"Error exporting gradebook: {str(e)}")


@router.post("/courses/{course_id}/grades/import")
async def import_grades(course_id: int, file: UploadFile = File(...),
                        ctx: SessionContext = Depends(get_current_context), db: Session = Depends(get_db)):
    """Import course grades from an ``email, grade[, feedback]`` CSV"""
    try:
        _require_course_staff(ctx, course_id, db)
        contents = await file.read()
        return gradebook_processor.import_grades(
            course_id, file.filename, contents, ctx.organization_id, db, graded_by=ctx.user_id
        )
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in import_grades: {e}")
        raise create_http_exception(500, f"Error importing grades: {str(e)}")


# ==============================================================================
# Certificates
# ==============================================================================

@router.get("/courses/{course_id}/certificate/eligibility")
def certificate_eligibility(course_id: int, ctx: SessionContext = Depends(get_current_context),
                            db: Session = Depends(get_db)):
    try:
        return certificate_service.check_certificate_eligibility(ctx.user_id, course_id, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in certificate_eligibility: {e}")
        raise create_http_exception(500, f"Error checking eligibility: {str(e)}")


@router.post("/courses/{course_id}/certificate/issue", status_code=201)
def issue_certificate(course_id: int, ctx: SessionContext = Depends(get_current_context),
                      db: Session = Depends(get_db)):
    try:
        certificate = certificate_service.issue_certificate(ctx.user_id, course_id, ctx.organization_id, db)
        return serialize_certificate(certificate)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in issue_certificate: {e}")
        raise create_http_exception(500, f"Error issuing certificate: {str(e)}")


@router.get("/courses/{course_id}/certificate")
def get_certificate(course_id: int, ctx: SessionContext = Depends(get_current_context),
                    db: Session = Depends(get_db)):
    try:
        certificate = certificate_service.get_certificate(ctx.user_id, course_id, ctx.organization_id, db)
        return serialize_certificate(certificate)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in get_certificate: {e}")
        raise create_http_exception(500, f"Error retrieving certificate: {str(e)}")


@router.get("/courses/{course_id}/certificate/download", response_class=HTMLResponse)
def download_certificate(request: Request, course_id: int,
                         ctx: SessionContext = Depends(get_current_context), db: Session = Depends(get_db)):
    """Printable HTML certificate"""
    try:
        certificate = certificate_service.get_certificate(ctx.user_id, course_id, ctx.organization_id, db)
        course = course_service.get_course(course_id, ctx.organization_id, db)
        return templates.TemplateResponse(request, "certificate.html", {
            "certificate": certificate,
            "holder_name": ctx.user.name,
            "course": course,
            "organization_name": course.organization.name if course.organization else "",
            "issued_on": certificate.issued_at.strftime("%d/%m/%Y") if certificate.issued_at else "",
        })
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in download_certificate: {e}")
        raise create_http_exception(500, f"Error rendering certificate: {str(e)}")


@router.get("/certificates/verify/{verification_code}")
def verify_certificate(verification_code: str, db: Session = Depends(get_db)):
    """Public certificate verification"""
    try:
        return certificate_service.verify_certificate(verification_code, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in verify_certificate: {e}")
        raise create_http_exception(500, f"Error verifying certificate: {str(e)}")
