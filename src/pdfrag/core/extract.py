"""PDF text extraction with PyMuPDF."""

import logging
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF

from .errors import ExtractionError

logger = logging.getLogger(__name__)


def extract_text(data: bytes) -> str:
    """
    Extract plain text from PDF bytes.

    Pages are joined with a blank line so that a page break is also a
    paragraph break for the chunker.

    Args:
        data: Raw PDF file contents

    Returns:
        Extracted text, possibly empty for image-only documents
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        # fitz.FileDataError and fitz.EmptyFileError are RuntimeErrors
        raise ExtractionError(f"Unreadable PDF: {e}") from e

    try:
        pages = [page.get_text() for page in doc]
        logger.debug(f"Extracted text from {doc.page_count} pages")
    except RuntimeError as e:
        raise ExtractionError(f"Failed to extract text: {e}") from e
    finally:
        doc.close()

    return "\n\n".join(pages)


def extract_text_from_file(file_path: Union[str, Path]) -> str:
    """Read a PDF from disk and extract its text."""
    path = Path(file_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ExtractionError(f"Cannot read {path}: {e}") from e
    return extract_text(data)
