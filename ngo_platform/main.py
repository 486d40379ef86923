# ==============================================================================
# main.py - Application entry point
# ==============================================================================

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from .config.settings import Settings
from .exceptions import ConfigurationError
from .routes import create_router
from .utils.database import init_database
from .utils.logging import auto_configure_logging, setup_logging

DEFAULT_SESSION_SECRET = "change-me-in-production"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    # Initialize settings
    settings = Settings()

    # Setup logging
    if settings.LOG_FILE:
        setup_logging(
            level=settings.LOG_LEVEL,
            log_file=settings.LOG_FILE,
            log_dir=settings.LOG_DIR,
            use_json=settings.ENVIRONMENT == "production",
        )
    else:
        auto_configure_logging(settings.ENVIRONMENT)

    if settings.ENVIRONMENT == "production" and settings.SESSION_SECRET == DEFAULT_SESSION_SECRET:
        raise ConfigurationError("SESSION_SECRET must be set in production", "SESSION_SECRET_MISSING")

    # Create FastAPI app
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Administration platform for NGOs with courses, grading and certificates"
    )

    # Cookie sessions carry user_id and organization_id
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        max_age=settings.SESSION_MAX_AGE,
        https_only=settings.SESSION_HTTPS_ONLY,
    )

    # Initialize database
    init_database()

    # Include routers
    app.include_router(create_router())

    @app.get("/health")
    def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


# Create the application instance
app = create_app()

# For development server
if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "ngo_platform.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
