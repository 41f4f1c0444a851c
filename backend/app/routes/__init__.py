"""API route registration."""

from fastapi import APIRouter
from .grading import router as grading_router
from .sessions import router as sessions_router


def register_all_routes(api_router: APIRouter):
    """Include all route modules on the main API router."""
    api_router.include_router(grading_router)
    api_router.include_router(sessions_router)
