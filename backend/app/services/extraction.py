"""
Text extraction adapter - Google Cloud Vision OCR over images, PDFs and Word files.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional

from google.api_core import exceptions as google_exceptions

from app.config import Settings, logger
from app.errors import ExtractionFailed, upstream_code
from app.services.file_processing import detect_file_type, docx_to_text, pdf_to_images
from app.utils.concurrency import TRANSIENT_ERRORS, conversion_semaphore


@dataclass
class ExtractionResult:
    text: str
    confidence: Optional[float] = None
    raw: Optional[Any] = None


@dataclass
class _PageResult:
    text: str
    block_confidences: List[float] = field(default_factory=list)
    raw: Optional[Any] = None


def average_confidence(confidences: List[float]) -> Optional[float]:
    if not confidences:
        return None
    return round(sum(confidences) / len(confidences), 4)


class VisionTextExtractor:
    """Wrapper around Google Cloud Vision document text detection."""

    def __init__(self, settings: Settings, client=None):
        self._credentials_path = settings.google_credentials_path
        self._store_raw = settings.store_raw_ocr
        self._client = client

    def _get_client(self):
        """Lazily initialize the Vision client from the configured service account."""
        if self._client is None:
            from google.cloud import vision
            self._client = vision.ImageAnnotatorClient.from_service_account_file(self._credentials_path)
            logger.info("✅ Google Cloud Vision OCR initialized")
        return self._client

    async def extract(self, document_bytes: bytes, filename: str = "") -> ExtractionResult:
        """
        Best-effort plain text for one document.
        Undetectable text gives an empty string; service failures raise ExtractionFailed,
        except transient ones which propagate unchanged so the caller can retry them.
        """
        file_type = detect_file_type(document_bytes, filename)

        if file_type == "docx":
            try:
                text = await asyncio.to_thread(docx_to_text, document_bytes)
            except Exception as e:
                raise ExtractionFailed(f"Could not read Word document {filename}: {e}")
            return ExtractionResult(text=text.strip())

        if file_type == "pdf":
            try:
                async with conversion_semaphore:
                    images = await asyncio.to_thread(pdf_to_images, document_bytes)
            except Exception as e:
                raise ExtractionFailed(f"Could not render PDF {filename}: {e}")
        else:
            images = [document_bytes]

        pages = []
        for image_bytes in images:
            pages.append(await asyncio.to_thread(self._detect_text, image_bytes))

        text = "\n\n".join(p.text.strip() for p in pages if p.text.strip())
        confidences = [c for p in pages for c in p.block_confidences]
        raw = [p.raw for p in pages] if self._store_raw else None

        logger.info(f"OCR extracted {len(text)} chars from {filename or 'document'} ({len(pages)} page(s))")
        return ExtractionResult(text=text, confidence=average_confidence(confidences), raw=raw)

    def _detect_text(self, image_bytes: bytes) -> _PageResult:
        from google.cloud import vision

        client = self._get_client()
        try:
            response = client.document_text_detection(image=vision.Image(content=image_bytes))
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise ExtractionFailed(f"OCR service error (code {upstream_code(e)}): {e.message}")

        error = getattr(response, "error", None)
        if error is not None and getattr(error, "message", None):
            raise ExtractionFailed(f"OCR service error (code {error.code}): {error.message}")

        annotation = response.full_text_annotation
        text = annotation.text if annotation and annotation.text else ""
        if not text and response.text_annotations:
            text = response.text_annotations[0].description or ""

        confidences = []
        if annotation:
            for page in annotation.pages:
                for block in page.blocks:
                    confidences.append(block.confidence)

        raw = None
        if self._store_raw:
            raw = vision.AnnotateImageResponse.to_dict(response)

        return _PageResult(text=text, block_confidences=confidences, raw=raw)
