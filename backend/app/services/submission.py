"""
Submission flow - validate uploads, store them, open a session, run grading.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from app.config import Settings, logger
from app.errors import GradingPipelineError, InvalidFileError, MissingFilesError, UploadFailed
from app.models.grading import SubmissionResponse
from app.models.session import DocumentKind, SessionStatus
from app.models.user import User
from app.services.file_processing import SUPPORTED_EXTENSIONS
from app.services.object_store import generate_object_key
from app.utils.concurrency import gather_all


@dataclass
class UploadedFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None


def validate_required_files(files: Dict[str, Optional[UploadedFile]]):
    """Raise MissingFilesError naming every required document that is absent or empty."""
    missing = [
        kind for kind in DocumentKind.REQUIRED
        if files.get(kind) is None or not files[kind].content
    ]
    if missing:
        raise MissingFilesError(missing)


def validate_file(kind: str, file: UploadedFile, max_upload_mb: int):
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise InvalidFileError(
            f"Unsupported file type for {DocumentKind.label(kind)}: '{ext or file.filename}'. "
            f"Allowed: {', '.join(SUPPORTED_EXTENSIONS)}"
        )
    file_size_mb = len(file.content) / (1024 * 1024)
    if file_size_mb > max_upload_mb:
        raise InvalidFileError(
            f"{DocumentKind.label(kind).capitalize()} too large ({file_size_mb:.1f}MB). "
            f"Maximum size is {max_upload_mb}MB."
        )


class SubmissionFlow:
    def __init__(self, settings: Settings, object_store, session_store, orchestrator):
        self.settings = settings
        self.objects = object_store
        self.sessions = session_store
        self.orchestrator = orchestrator

    async def submit(self, user: User, files: Dict[str, Optional[UploadedFile]]) -> SubmissionResponse:
        validate_required_files(files)
        provided = {kind: f for kind, f in files.items() if f is not None and f.content}
        for kind, file in provided.items():
            validate_file(kind, file, self.settings.max_upload_mb)

        paths = await gather_all({kind: self._upload(kind, file) for kind, file in provided.items()})
        logger.info(f"Uploaded {len(paths)} files for user {user.user_id}")

        session = await self.sessions.create(
            user_id=user.user_id,
            question_paper_path=paths[DocumentKind.QUESTION_PAPER],
            grading_rubric_path=paths[DocumentKind.GRADING_RUBRIC],
            answer_sheet_path=paths[DocumentKind.ANSWER_SHEET],
            additional_file_path=paths.get(DocumentKind.ADDITIONAL_FILE),
        )

        try:
            result = await self.orchestrator.process(session.id)
        except GradingPipelineError as e:
            logger.error(f"Grading failed for new session {session.id}: {e}")
            current = await self.sessions.get(session.id)
            return SubmissionResponse(
                session_id=session.id,
                status=current.status if current else SessionStatus.PENDING,
                message="An error occurred while processing the files. Please try again.",
                error=e.message,
            )

        return SubmissionResponse(
            session_id=session.id,
            status=SessionStatus.COMPLETED,
            message=result["message"],
            feedback=result["results"],
            score=result["score"],
            answers=result["answers"],
        )

    async def _upload(self, kind: str, file: UploadedFile) -> str:
        bucket = DocumentKind.BUCKETS[kind]
        key = generate_object_key(file.filename)
        try:
            return await self.objects.upload(bucket, key, file.content, file.content_type)
        except Exception as e:
            raise UploadFailed(f"Error uploading {bucket}: {e}") from e
