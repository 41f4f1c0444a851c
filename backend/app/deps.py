"""
FastAPI dependencies - services, get_current_user.
"""

from typing import Optional

from fastapi import Request, HTTPException, Depends

from app.models.user import User
from app.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_session_token(request: Request) -> Optional[str]:
    """Session token from the session_token cookie or a Bearer header."""
    session_token = request.cookies.get("session_token")
    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header.split(" ", 1)[1]
    return session_token or None


async def resolve_user(request: Request, services: Services) -> User:
    """
    Resolve the authenticated user or raise 401 pointing at the sign-in page.
    Callable directly so routes can validate input before touching the database.
    """
    redirect = {"Location": services.settings.auth_redirect_url}

    session_token = get_session_token(request)
    if not session_token:
        raise HTTPException(status_code=401, detail="Not authenticated", headers=redirect)

    user = await services.auth.resolve(session_token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid session", headers=redirect)
    return user


async def get_current_user(request: Request, services: Services = Depends(get_services)) -> User:
    return await resolve_user(request, services)
