"""Pydantic models for GradeSense application"""

from .user import User
from .session import (
    SessionStatus,
    DocumentKind,
    AnswerItem,
    GradingSession,
    ExtractedText,
)
from .grading import (
    ProcessGradingRequest,
    ProcessGradingResponse,
    ErrorResponse,
    SubmissionResponse,
)
