# ==============================================================================
# utils/__init__.py - Utils package initialization
# ==============================================================================

"""
Utils package for the NGO platform.
Provides database utilities, the session gate and logging configuration.
"""

from .database import (
    init_database,
    get_db,
    reset_database
)

from .logging import (
    setup_logging,
    log_database_operation,
    LoggingContext,
    setup_development_logging,
    setup_production_logging,
    setup_testing_logging,
    auto_configure_logging,
)

from .auth import (
    SessionContext,
    get_current_context,
    get_session_user,
    require_staff,
    is_course_staff,
    find_active_role,
    start_session,
)

__all__ = [
    # Database utilities
    "init_database",
    "get_db",
    "reset_database",

    # Logging utilities
    "setup_logging",
    "log_database_operation",
    "LoggingContext",
    "setup_development_logging",
    "setup_production_logging",
    "setup_testing_logging",
    "auto_configure_logging",

    # Session gate
    "SessionContext",
    "get_current_context",
    "get_session_user",
    "require_staff",
    "is_course_staff",
    "find_active_role",
    "start_session",
]
