"""Grading session and extracted-text Pydantic models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Any
from datetime import datetime, timezone


class SessionStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentKind:
    """Logical document categories and the bucket each one lives in."""
    QUESTION_PAPER = "question_paper"
    GRADING_RUBRIC = "grading_rubric"
    ANSWER_SHEET = "answer_sheet"
    ADDITIONAL_FILE = "additional_file"

    REQUIRED = (QUESTION_PAPER, GRADING_RUBRIC, ANSWER_SHEET)
    ALL = REQUIRED + (ADDITIONAL_FILE,)

    BUCKETS = {
        QUESTION_PAPER: "question_papers",
        GRADING_RUBRIC: "grading_rubrics",
        ANSWER_SHEET: "answer_sheets",
        ADDITIONAL_FILE: "additional_files",
    }

    @staticmethod
    def label(kind: str) -> str:
        """'grading_rubric' -> 'grading rubric'"""
        return kind.replace("_", " ")


class AnswerItem(BaseModel):
    questionNumber: int
    text: str
    score: Optional[float] = None
    maxScore: Optional[float] = None
    feedback: Optional[str] = None
    confidence: Optional[float] = None


class GradingSession(BaseModel):
    """One grading attempt: three required documents and their derived state"""
    model_config = ConfigDict(extra="ignore")
    id: str
    user_id: str
    question_paper_path: str
    grading_rubric_path: str
    answer_sheet_path: str
    additional_file_path: Optional[str] = None
    status: str = SessionStatus.PENDING  # pending, processing, completed, failed
    feedback: Optional[str] = None
    score: Optional[float] = None  # Parsed "X out of 100", None when unparsable
    answers: List[AnswerItem] = []
    attempts: int = 0
    last_error: Optional[str] = None
    lease_expires_at: Optional[datetime] = None  # set while processing; an expired lease may be reclaimed
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def path_for(self, kind: str) -> Optional[str]:
        return getattr(self, f"{kind}_path")

    def document_paths(self) -> dict:
        """Map of document kind -> stored key, skipping the absent optional file."""
        paths = {}
        for kind in DocumentKind.ALL:
            path = self.path_for(kind)
            if path:
                paths[kind] = path
        return paths


class ExtractedText(BaseModel):
    """OCR output for one session. Created once, never mutated"""
    model_config = ConfigDict(extra="ignore")
    grading_session_id: str
    question_paper_text: str
    grading_rubric_text: str
    answer_sheet_text: str
    additional_file_text: Optional[str] = None
    raw_ocr_response: Optional[Any] = None
    confidence_score: Optional[float] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
