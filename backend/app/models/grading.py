"""Request/response payloads for the grading routes"""

from pydantic import BaseModel
from typing import Optional, List

from .session import AnswerItem


class ProcessGradingRequest(BaseModel):
    sessionId: str


class ProcessGradingResponse(BaseModel):
    message: str
    results: Optional[str] = None
    answers: List[AnswerItem] = []
    score: Optional[float] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class SubmissionResponse(BaseModel):
    session_id: str
    status: str
    message: str
    feedback: Optional[str] = None
    score: Optional[float] = None
    answers: List[AnswerItem] = []
    error: Optional[str] = None
