"""
Session-token authentication against the users / user_sessions collections.
"""

from datetime import datetime, timezone
from typing import Optional

from app.models.user import User


class SessionTokenAuth:
    def __init__(self, db):
        self.db = db

    async def resolve(self, session_token: str) -> Optional[User]:
        """Return the user owning an unexpired session token, or None."""
        session = await self.db.user_sessions.find_one(
            {"session_token": session_token},
            {"_id": 0}
        )
        if not session:
            return None

        expires_at = session.get("expires_at")
        if expires_at:
            if isinstance(expires_at, str):
                expires_at = datetime.fromisoformat(expires_at)
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at < datetime.now(timezone.utc):
                return None

        user = await self.db.users.find_one({"user_id": session["user_id"]}, {"_id": 0})
        if not user:
            return None
        return User(**user)
