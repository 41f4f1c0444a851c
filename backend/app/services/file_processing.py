"""
Document decoding - PDF pages to images, Word documents to text.
"""

import io
import os
from typing import List

import fitz
from docx import Document
from PIL import Image

from app.config import logger

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".jpg", ".jpeg", ".png")


def detect_file_type(file_bytes: bytes, filename: str = "") -> str:
    """Return 'pdf', 'docx' or 'image'."""
    ext = os.path.splitext(filename)[1].lower() if filename else ""
    if ext == ".pdf" or (not ext and file_bytes[:5] == b"%PDF-"):
        return "pdf"
    if ext == ".docx":
        return "docx"
    return "image"


def pdf_to_images(pdf_bytes: bytes) -> List[bytes]:
    """Render every PDF page to JPEG bytes for OCR."""
    images = []
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        for page_num in range(len(doc)):
            page = doc[page_num]
            # 2x zoom keeps handwriting legible for OCR
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))

            buffer = io.BytesIO()
            img.convert("RGB").save(buffer, format="JPEG", quality=85, optimize=True)
            images.append(buffer.getvalue())
    finally:
        doc.close()
    logger.info(f"Converted PDF with {len(images)} pages to images")
    return images


def docx_to_text(docx_bytes: bytes) -> str:
    """Read the paragraph text of a Word document."""
    document = Document(io.BytesIO(docx_bytes))
    paragraphs = [p.text for p in document.paragraphs if p.text.strip()]
    return "\n".join(paragraphs)
