"""
Grading-session orchestrator.

download (parallel) -> extract (parallel) -> store extracted text -> grade -> complete.
Every stage is all-or-nothing; a failure aborts the run and hands the session back
for a later re-trigger.
"""

import asyncio
from typing import Dict, Optional

from google.api_core import exceptions as google_exceptions

from app.config import Settings, logger
from app.errors import (
    DownloadFailed,
    ExtractionFailed,
    ExternalTimeout,
    GradingFailed,
    GradingPipelineError,
    SessionNotFound,
    upstream_code,
)
from app.models.session import DocumentKind, ExtractedText, GradingSession
from app.services.extraction import ExtractionResult, average_confidence
from app.services.grading import build_grading_prompt, extract_overall_score, split_answers
from app.utils.concurrency import call_with_timeout, gather_all, retry_transient


def _title(kind: str) -> str:
    return DocumentKind.label(kind).capitalize()


class GradingOrchestrator:
    def __init__(self, settings: Settings, session_store, object_store, extractor, grader):
        self.settings = settings
        self.sessions = session_store
        self.objects = object_store
        self.extractor = extractor
        self.grader = grader

    def lease_seconds(self) -> float:
        """Upper bound on one run: a download, then OCR and grading with all their retries."""
        timeout = self.settings.external_call_timeout_seconds
        attempts = self.settings.adapter_max_attempts
        backoff = self.settings.retry_base_delay_seconds * (2 ** (attempts - 1) - 1)
        return timeout * (2 * attempts + 1) + 2 * backoff

    async def process(self, session_id: str) -> dict:
        """Run the full pipeline for one session and return the feedback payload."""
        if await self.sessions.get(session_id) is None:
            raise SessionNotFound(session_id)

        session = await self.sessions.claim(session_id, self.lease_seconds())
        logger.info(f"=== GRADING SESSION START === {session_id} (attempt {session.attempts})")

        try:
            result = await self._run(session)
        except asyncio.CancelledError:
            logger.warning(f"=== GRADING SESSION CANCELLED === {session_id}")
            await self._release(session_id, "Processing was cancelled")
            raise
        except Exception as e:
            logger.error(f"=== GRADING SESSION ERROR === {session_id}: {e}")
            await self._release(session_id, str(e))
            raise

        logger.info(f"=== GRADING SESSION DONE === {session_id} (score={result['score']})")
        return result

    async def _run(self, session: GradingSession) -> dict:
        paths = session.document_paths()

        documents = await gather_all({
            kind: self._download(kind, path) for kind, path in paths.items()
        })
        logger.info(f"Session {session.id}: downloaded {len(documents)} documents")

        extracted = await gather_all({
            kind: self._extract(kind, documents[kind], paths[kind]) for kind in documents
        })
        logger.info(f"Session {session.id}: extracted text from {len(extracted)} documents")

        await self.sessions.save_extracted_text(self._to_record(session.id, extracted))

        additional = extracted.get(DocumentKind.ADDITIONAL_FILE)
        prompt = build_grading_prompt(
            question_paper=extracted[DocumentKind.QUESTION_PAPER].text,
            grading_rubric=extracted[DocumentKind.GRADING_RUBRIC].text,
            answer_sheet=extracted[DocumentKind.ANSWER_SHEET].text,
            additional_file=additional.text if additional else None,
            limit=self.settings.max_prompt_chars,
        )

        feedback = await self._grade(prompt)

        answer_sheet = extracted[DocumentKind.ANSWER_SHEET]
        score = extract_overall_score(feedback)
        answers = split_answers(answer_sheet.text, answer_sheet.confidence)

        await self.sessions.complete(session.id, feedback, score, answers)

        return {
            "message": "Grading completed successfully",
            "session_id": session.id,
            "results": feedback,
            "score": score,
            "answers": [a.model_dump() for a in answers],
        }

    async def _download(self, kind: str, path: str) -> bytes:
        bucket = DocumentKind.BUCKETS[kind]
        try:
            data = await call_with_timeout(
                self.objects.download(bucket, path),
                self.settings.external_call_timeout_seconds,
                f"download of {DocumentKind.label(kind)}",
            )
        except GradingPipelineError:
            raise
        except Exception as e:
            raise DownloadFailed(f"{_title(kind)} could not be read: {e}") from e

        if not data:
            raise DownloadFailed(f"{_title(kind)} not found")
        return data

    async def _extract(self, kind: str, data: bytes, filename: str) -> ExtractionResult:
        operation = f"text extraction for {DocumentKind.label(kind)}"

        async def attempt():
            return await call_with_timeout(
                self.extractor.extract(data, filename),
                self.settings.external_call_timeout_seconds,
                operation,
            )

        try:
            result = await retry_transient(
                attempt,
                self.settings.adapter_max_attempts,
                self.settings.retry_base_delay_seconds,
                operation,
            )
        except (ExternalTimeout, ExtractionFailed):
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise ExtractionFailed(f"{_title(kind)}: OCR service error (code {upstream_code(e)}): {e.message}") from e

        # Strict policy: a document without text aborts the session
        if not result.text or not result.text.strip():
            raise ExtractionFailed(f"{_title(kind)}: no text could be extracted")
        return result

    async def _grade(self, prompt: str) -> str:
        async def attempt():
            return await call_with_timeout(
                self.grader.grade(prompt),
                self.settings.external_call_timeout_seconds,
                "grading",
            )

        try:
            return await retry_transient(
                attempt,
                self.settings.adapter_max_attempts,
                self.settings.retry_base_delay_seconds,
                "grading",
            )
        except google_exceptions.GoogleAPICallError as e:
            raise GradingFailed(f"Generation service error (code {upstream_code(e)}): {e.message}") from e

    def _to_record(self, session_id: str, extracted: Dict[str, ExtractionResult]) -> ExtractedText:
        additional = extracted.get(DocumentKind.ADDITIONAL_FILE)
        raw = {kind: result.raw for kind, result in extracted.items() if result.raw is not None}
        confidences = [r.confidence for r in extracted.values() if r.confidence is not None]
        return ExtractedText(
            grading_session_id=session_id,
            question_paper_text=extracted[DocumentKind.QUESTION_PAPER].text,
            grading_rubric_text=extracted[DocumentKind.GRADING_RUBRIC].text,
            answer_sheet_text=extracted[DocumentKind.ANSWER_SHEET].text,
            additional_file_text=additional.text if additional else None,
            raw_ocr_response=raw or None,
            confidence_score=average_confidence(confidences),
        )

    async def _release(self, session_id: str, error: str) -> Optional[str]:
        try:
            return await self.sessions.release(session_id, error)
        except GradingPipelineError as release_error:
            logger.error(f"Could not release session {session_id}: {release_error}")
            return None
