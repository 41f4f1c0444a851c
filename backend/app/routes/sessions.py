"""Grading session routes - submit files, poll a session, list my sessions."""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from app.config import logger
from app.deps import get_current_user, get_services, resolve_user
from app.errors import GradingPipelineError
from app.models.grading import SubmissionResponse
from app.models.session import DocumentKind
from app.models.user import User
from app.routes.grading import error_response
from app.services import Services
from app.services.submission import UploadedFile, validate_required_files

router = APIRouter(tags=["sessions"])


async def _read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None or not file.filename:
        return None
    content = await file.read()
    return UploadedFile(filename=file.filename, content=content, content_type=file.content_type)


@router.post("/grading-sessions", response_model=SubmissionResponse)
async def submit_grading_session(
    request: Request,
    question_paper: Optional[UploadFile] = File(None),
    grading_rubric: Optional[UploadFile] = File(None),
    answer_sheet: Optional[UploadFile] = File(None),
    additional_file: Optional[UploadFile] = File(None),
    services: Services = Depends(get_services),
):
    """Upload the three required documents (plus an optional one) and grade them"""
    files = {
        DocumentKind.QUESTION_PAPER: await _read_upload(question_paper),
        DocumentKind.GRADING_RUBRIC: await _read_upload(grading_rubric),
        DocumentKind.ANSWER_SHEET: await _read_upload(answer_sheet),
        DocumentKind.ADDITIONAL_FILE: await _read_upload(additional_file),
    }

    # Checked before auth so an incomplete form never reaches the database
    try:
        validate_required_files(files)
    except GradingPipelineError as e:
        return error_response(e)

    user = await resolve_user(request, services)

    try:
        result = await services.submission.submit(user, files)
    except Exception as e:
        logger.error(f"=== SUBMISSION ERROR === User: {user.user_id}: {e}", exc_info=True)
        return error_response(e)

    if result.error:
        return JSONResponse(status_code=502, content=result.model_dump(mode="json"))
    return result


@router.get("/grading-sessions")
async def list_grading_sessions(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    sessions = await services.sessions.list_for_user(user.user_id)
    return [s.model_dump(mode="json") for s in sessions]


@router.get("/grading-sessions/{session_id}")
async def get_grading_session(
    session_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Poll a session's status, feedback and extracted text"""
    session = await services.sessions.get(session_id)
    if not session or session.user_id != user.user_id:
        raise HTTPException(status_code=404, detail="Session not found")

    extracted = await services.sessions.get_extracted_text(session_id)
    result = session.model_dump(mode="json")
    result["extracted_text"] = extracted.model_dump(mode="json", exclude={"raw_ocr_response"}) if extracted else None
    return result
