"""
Session store - grading_sessions and extracted_texts collections.

A session row is written by the submission flow once and afterwards only by the
orchestrator that holds its processing claim.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.config import logger
from app.errors import PersistenceFailed, SessionBusy, SessionNotFound
from app.models.session import AnswerItem, ExtractedText, GradingSession, SessionStatus

# Statuses a new processing run may start from. 'failed' sessions are skipped by
# automatic retries but an explicit trigger may still run them.
CLAIMABLE = [SessionStatus.PENDING, SessionStatus.COMPLETED, SessionStatus.FAILED]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStore:
    def __init__(self, db):
        self.sessions = db.grading_sessions
        self.extracted_texts = db.extracted_texts

    async def create(
        self,
        user_id: str,
        question_paper_path: str,
        grading_rubric_path: str,
        answer_sheet_path: str,
        additional_file_path: Optional[str] = None,
    ) -> GradingSession:
        session = GradingSession(
            id=f"session_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            question_paper_path=question_paper_path,
            grading_rubric_path=grading_rubric_path,
            answer_sheet_path=answer_sheet_path,
            additional_file_path=additional_file_path,
            status=SessionStatus.PENDING,
        )
        try:
            await self.sessions.insert_one(session.model_dump(mode="json"))
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to create grading session: {e}")
        logger.info(f"Created grading session {session.id} for user {user_id}")
        return session

    async def get(self, session_id: str) -> Optional[GradingSession]:
        try:
            doc = await self.sessions.find_one({"id": session_id}, {"_id": 0})
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to read session {session_id}: {e}")
        return GradingSession(**doc) if doc else None

    async def list_for_user(self, user_id: str, limit: int = 100) -> List[GradingSession]:
        try:
            cursor = self.sessions.find({"user_id": user_id}, {"_id": 0}).sort("created_at", -1)
            docs = await cursor.to_list(limit)
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to list sessions for user {user_id}: {e}")
        return [GradingSession(**doc) for doc in docs]

    async def claim(self, session_id: str, lease_seconds: float) -> GradingSession:
        """
        Move a session to 'processing' in one atomic step.
        Only one invocation can hold the claim at a time. A claim whose lease has
        run out (its holder was killed) can be taken over.
        """
        now = datetime.now(timezone.utc)
        try:
            doc = await self.sessions.find_one_and_update(
                {"id": session_id, "$or": [
                    {"status": {"$in": CLAIMABLE}},
                    {"status": SessionStatus.PROCESSING, "lease_expires_at": {"$lt": now.isoformat()}},
                ]},
                {"$set": {
                    "status": SessionStatus.PROCESSING,
                    "lease_expires_at": (now + timedelta(seconds=lease_seconds)).isoformat(),
                    "updated_at": now.isoformat(),
                }, "$inc": {"attempts": 1}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to claim session {session_id}: {e}")

        if doc:
            return GradingSession(**doc)

        if await self.get(session_id) is None:
            raise SessionNotFound(session_id)
        raise SessionBusy(f"Session {session_id} is already being processed")

    async def complete(
        self,
        session_id: str,
        feedback: str,
        score: Optional[float],
        answers: List[AnswerItem],
    ):
        now = _now()
        try:
            result = await self.sessions.update_one(
                {"id": session_id, "status": SessionStatus.PROCESSING},
                {"$set": {
                    "status": SessionStatus.COMPLETED,
                    "feedback": feedback,
                    "score": score,
                    "answers": [a.model_dump() for a in answers],
                    "attempts": 0,
                    "last_error": None,
                    "lease_expires_at": None,
                    "completed_at": now,
                    "updated_at": now,
                }},
            )
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to store feedback for session {session_id}: {e}")
        if result.matched_count == 0:
            raise PersistenceFailed(f"Session {session_id} was not in processing state")

    async def release(self, session_id: str, error: str) -> str:
        """
        Give up the processing claim after a failed run.
        The session goes back to 'pending' with the error recorded, ready for a re-trigger.
        """
        try:
            await self.sessions.update_one(
                {"id": session_id, "status": SessionStatus.PROCESSING},
                {"$set": {
                    "status": SessionStatus.PENDING,
                    "last_error": error,
                    "lease_expires_at": None,
                    "updated_at": _now(),
                }},
            )
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to release session {session_id}: {e}")
        logger.info(f"Session {session_id} released as pending: {error}")
        return SessionStatus.PENDING

    async def mark_failed(self, session_id: str) -> bool:
        """Take a pending session out of automatic retries. Returns False if it was not pending."""
        try:
            result = await self.sessions.update_one(
                {"id": session_id, "status": SessionStatus.PENDING},
                {"$set": {"status": SessionStatus.FAILED, "updated_at": _now()}},
            )
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to mark session {session_id} failed: {e}")
        return result.matched_count == 1

    async def save_extracted_text(self, extracted: ExtractedText):
        try:
            await self.extracted_texts.insert_one(extracted.model_dump(mode="json"))
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to store extracted text: {e}")

    async def get_extracted_text(self, session_id: str) -> Optional[ExtractedText]:
        try:
            doc = await self.extracted_texts.find_one(
                {"grading_session_id": session_id},
                {"_id": 0},
                sort=[("created_at", -1)],
            )
        except PyMongoError as e:
            raise PersistenceFailed(f"Failed to read extracted text for session {session_id}: {e}")
        return ExtractedText(**doc) if doc else None
