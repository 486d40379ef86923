# ==============================================================================
# exceptions.py - Custom exception classes for the NGO platform
# ==============================================================================

"""
Custom exception classes for the NGO platform.
These exceptions provide specific error handling for database operations,
tenancy, the course engine and validation errors.
"""

from typing import Optional, Any, Dict
import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class NGOPlatformBaseException(Exception):
    """Base exception class for all platform-specific exceptions"""

    status_code: int = 500

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

        # Log the exception when it's created
        logger.error(f"Exception raised: {self.__class__.__name__} - {message}",
                    extra={"error_code": error_code, "details": details})


# ==============================================================================
# Database-related exceptions
# ==============================================================================

class DatabaseConnectionError(NGOPlatformBaseException):
    """Raised when database connection fails"""
    pass


class DatabaseOperationError(NGOPlatformBaseException):
    """Raised when a database operation fails"""
    pass


class DatabaseIntegrityError(NGOPlatformBaseException):
    """Raised when database integrity constraints are violated"""
    status_code = 409


# ==============================================================================
# Not-found exceptions
# ==============================================================================

class NotFoundError(NGOPlatformBaseException):
    """Base exception for entities missing from the caller's organization"""
    status_code = 404

    def __init__(self, entity: str, identifier: Any = None):
        message = f"{entity} not found"
        if identifier is not None:
            message += f": {identifier}"
        code = entity.upper().replace(" ", "_") + "_NOT_FOUND"
        super().__init__(message, code, {"entity": entity, "identifier": identifier})


class OrganizationNotFoundError(NotFoundError):
    def __init__(self, organization_id: Any = None):
        super().__init__("Organization", organization_id)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: Any = None):
        super().__init__("User", user_id)


class CourseNotFoundError(NotFoundError):
    def __init__(self, course_id: Any = None):
        super().__init__("Course", course_id)


class CourseModuleNotFoundError(NotFoundError):
    def __init__(self, module_id: Any = None):
        super().__init__("Module", module_id)


class CertificateNotFoundError(NotFoundError):
    def __init__(self, identifier: Any = None):
        super().__init__("Certificate", identifier)


class RecordNotFoundError(NotFoundError):
    def __init__(self, record_type: str, record_id: Any = None):
        super().__init__(record_type, record_id)


# ==============================================================================
# Precondition exceptions
# ==============================================================================

class PreconditionFailedError(NGOPlatformBaseException):
    """Raised when an operation is not allowed in the current state"""
    status_code = 409

    def __init__(self, reason: str, error_code: str = "PRECONDITION_FAILED", details: Dict[str, Any] = None):
        self.reason = reason
        super().__init__(reason, error_code, details)


class CertificateNotEligibleError(PreconditionFailedError):
    """Raised when a certificate is requested while the learner is ineligible"""

    def __init__(self, reason: str, completion_summary: Optional[Dict[str, Any]] = None):
        super().__init__(reason, "CERTIFICATE_NOT_ELIGIBLE",
                         {"completion_summary": completion_summary})


class CertificateAlreadyIssuedError(PreconditionFailedError):
    """Raised when a certificate already exists for the (user, course) pair"""

    def __init__(self, user_id: int, course_id: int):
        super().__init__("already issued", "CERTIFICATE_ALREADY_ISSUED",
                         {"user_id": user_id, "course_id": course_id})


class DuplicateRecordError(PreconditionFailedError):
    """Raised when attempting to create a record that already exists"""

    def __init__(self, entity: str, field: str, value: Any):
        super().__init__(f"{entity} already exists with {field}: {value}", "DUPLICATE_RECORD",
                         {"entity": entity, "field": field, "value": value})


# ==============================================================================
# Validation exceptions
# ==============================================================================

class ValidationError(NGOPlatformBaseException):
    """Base exception for validation errors"""
    status_code = 422


class RequiredFieldError(ValidationError):
    """Raised when a required field is missing or empty"""

    def __init__(self, field_name: str, entity_type: str = None):
        message = f"Required field missing: {field_name}"
        if entity_type:
            message += f" in {entity_type}"
        super().__init__(message, "REQUIRED_FIELD_MISSING", {"field": field_name, "entity_type": entity_type})


class InvalidAnswersError(ValidationError):
    """Raised when a form answers payload is malformed"""

    def __init__(self, reason: str):
        super().__init__(f"Invalid answers payload ({reason})", "INVALID_ANSWERS", {"reason": reason})


class InvalidGradeError(ValidationError):
    """Raised when a grade value is invalid"""

    def __init__(self, grade: Any, reason: str = None):
        message = f"Invalid grade: {grade}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, "INVALID_GRADE", {"grade": grade, "reason": reason})


class InvalidFieldValueError(ValidationError):
    """Raised when a field carries a value outside its allowed set"""

    def __init__(self, field: str, value: Any, allowed: Any = None):
        message = f"Invalid value for {field}: {value}"
        if allowed:
            message += f" (allowed: {', '.join(str(a) for a in allowed)})"
        super().__init__(message, "INVALID_FIELD_VALUE", {"field": field, "value": value})


class InvalidFileError(ValidationError):
    """Raised when an uploaded file is invalid"""

    def __init__(self, reason: str):
        super().__init__(f"Invalid file: {reason}", "INVALID_FILE", {"reason": reason})


# ==============================================================================
# Authentication / authorization exceptions
# ==============================================================================

class AuthenticationError(NGOPlatformBaseException):
    """Raised when the request carries no valid session or credentials"""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "AUTHENTICATION_REQUIRED")


class AuthorizationError(NGOPlatformBaseException):
    """Raised when the session user lacks the required role"""
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, "ACCESS_DENIED")


# ==============================================================================
# Configuration exceptions
# ==============================================================================

class ConfigurationError(NGOPlatformBaseException):
    """Raised when configuration is invalid or missing"""
    pass


# ==============================================================================
# Utility functions for exception handling
# ==============================================================================

def create_http_exception(status_code: int, detail: str) -> HTTPException:
    """Create standardized HTTP exception"""
    return HTTPException(status_code=status_code, detail=detail)


def to_http_exception(exc: NGOPlatformBaseException) -> HTTPException:
    """Translate a platform exception into the HTTP error the client sees"""
    return create_http_exception(exc.status_code, exc.message)


def log_exception(exc: Exception, context: str = None, extra_data: Dict[str, Any] = None) -> None:
    """
    Log an exception with additional context and data.

    Args:
        exc: The exception to log
        context: Additional context about where the exception occurred
        extra_data: Additional data to include in the log
    """
    extra_info = {
        "exception_type": exc.__class__.__name__,
        "exception_message": str(exc)
    }

    if extra_data:
        extra_info.update(extra_data)

    if hasattr(exc, 'error_code'):
        extra_info["error_code"] = exc.error_code

    if hasattr(exc, 'details'):
        extra_info["exception_details"] = exc.details

    log_message = f"Exception occurred: {exc.__class__.__name__}"
    if context:
        log_message += f" in {context}"
    log_message += f" - {str(exc)}"

    logger.error(log_message, extra=extra_info)


def handle_database_error(exc: Exception, operation: str = None) -> NGOPlatformBaseException:
    """
    Convert database exceptions to appropriate platform exceptions.

    Args:
        exc: The original database exception
        operation: The database operation that failed

    Returns:
        Appropriate platform exception
    """
    from sqlalchemy.exc import IntegrityError, OperationalError, DataError

    context = f"during {operation}" if operation else ""

    if isinstance(exc, IntegrityError):
        return DatabaseIntegrityError(f"Database integrity constraint violated {context}: {str(exc)}")
    elif isinstance(exc, OperationalError):
        return DatabaseConnectionError(f"Database connection failed {context}: {str(exc)}")
    elif isinstance(exc, DataError):
        return DatabaseOperationError(f"Database data error {context}: {str(exc)}")
    else:
        return DatabaseOperationError(f"Database operation failed {context}: {str(exc)}")
