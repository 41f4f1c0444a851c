"""Grading routes - trigger processing for a session."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.config import logger
from app.deps import get_current_user, get_services
from app.errors import GradingPipelineError, SessionNotFound
from app.models.grading import ErrorResponse, ProcessGradingRequest, ProcessGradingResponse
from app.models.user import User
from app.services import Services

router = APIRouter(tags=["grading"])


def error_response(error: Exception) -> JSONResponse:
    if isinstance(error, GradingPipelineError):
        body = ErrorResponse(error=error.message, details=error.kind)
        status_code = error.status_code
    else:
        body = ErrorResponse(error=str(error) or "Internal error", details=type(error).__name__)
        status_code = 500
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post("/process-grading", response_model=ProcessGradingResponse)
async def process_grading(
    payload: ProcessGradingRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Run the grading pipeline for an existing session"""
    logger.info(f"=== PROCESS GRADING === User: {user.user_id}, Session: {payload.sessionId}")
    try:
        session = await services.sessions.get(payload.sessionId)
        if session is None or session.user_id != user.user_id:
            raise SessionNotFound(payload.sessionId)

        result = await services.orchestrator.process(payload.sessionId)
        return ProcessGradingResponse(
            message=result["message"],
            results=result["results"],
            answers=result["answers"],
            score=result["score"],
        )
    except Exception as e:
        logger.error(f"Error processing grading for {payload.sessionId}: {e}", exc_info=True)
        return error_response(e)
