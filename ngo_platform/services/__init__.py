# services/__init__.py

"""
Services package for the NGO platform.

This package contains all business logic services for managing:
- Users, organizations and organization roles
- Organization-scoped records and identity provisioning
- Courses, enrollment, progress, grading and certificates
- Gradebook CSV import/export

Usage:
    from ngo_platform.services import CourseService, EnrollmentService, CertificateService

    # Or import specific services
    from ngo_platform.services.enrollment_service import EnrollmentService
"""

from .auth_service import AuthService
from .provisioning import EventDispatcher, IdentityProvisioningHandler, PersonRegistered
from .record_service import RecordService
from .course_service import CourseService
from .enrollment_service import EnrollmentService
from .progress_service import ProgressService
from .grading_service import GradingService
from .certificate_service import CertificateService
from .gradebook_csv import GradebookCSVProcessor

# Make services available at package level
__all__ = [
    "AuthService",
    "EventDispatcher",
    "IdentityProvisioningHandler",
    "PersonRegistered",
    "RecordService",
    "CourseService",
    "EnrollmentService",
    "ProgressService",
    "GradingService",
    "CertificateService",
    "GradebookCSVProcessor",
]


# Service factory functions for dependency injection
def get_course_service():
    """Factory function to create CourseService instance"""
    return CourseService()


def get_enrollment_service():
    """Factory function to create EnrollmentService instance"""
    return EnrollmentService(get_course_service())


def get_certificate_service():
    """Factory function to create CertificateService instance"""
    return CertificateService(get_course_service())


def get_gradebook_processor():
    """Factory function to create GradebookCSVProcessor instance"""
    return GradebookCSVProcessor(get_course_service())
