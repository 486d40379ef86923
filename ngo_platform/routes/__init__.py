# ==============================================================================
# routes/__init__.py - Route module initialization
# ==============================================================================

from fastapi import APIRouter
from . import auth, courses, records


def create_router():
    """Create and configure the main router with all sub-routers"""
    main_router = APIRouter()

    # Include auth and organization routes
    main_router.include_router(auth.router, prefix="/api", tags=["auth"])

    # Include course engine routes
    main_router.include_router(courses.router, prefix="/api", tags=["courses"])

    # Record CRUD last: its /{resource} paths would shadow the routes above
    main_router.include_router(records.router, prefix="/api", tags=["records"])

    return main_router
