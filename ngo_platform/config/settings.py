# ==============================================================================
# config/settings.py - Configuration management
# ==============================================================================

import os
from typing import Optional


class Settings:
    """Application settings and configuration"""

    # App settings
    APP_NAME: str = "NGO Platform"
    APP_VERSION: str = "1.0.0"

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./ngo_platform.db")

    # Session settings
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "change-me-in-production")
    SESSION_MAX_AGE: int = int(os.getenv("SESSION_MAX_AGE", str(24 * 60 * 60)))
    SESSION_HTTPS_ONLY: bool = os.getenv("SESSION_HTTPS_ONLY", "False").lower() == "true"

    # Grading settings
    FORM_PASS_PERCENTAGE: float = 70.0  # fixed threshold for a single module form
    DEFAULT_PASS_SCORE: int = int(os.getenv("DEFAULT_PASS_SCORE", "70"))
    MIN_GRADE_SCALE: float = 1.0
    MAX_GRADE_SCALE: float = 10.0

    # Identity provisioning
    TEMPORARY_PASSWORD_LENGTH: int = int(os.getenv("TEMPORARY_PASSWORD_LENGTH", "12"))

    # File upload settings
    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", "10485760"))  # 10MB
    ALLOWED_EXTENSIONS: list = [".csv"]

    # Gradebook CSV settings
    MIN_ROWS: int = 1
    REQUIRED_GRADE_COLUMNS: list = ["email", "grade"]

    # Template settings
    TEMPLATES_DIR: str = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates"
    )

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
