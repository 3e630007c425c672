"""Text extraction from uploaded bytes, dispatched on MIME type."""
import logging
import re
import unicodedata
from io import BytesIO
from typing import Callable

import PyPDF2
from bs4 import BeautifulSoup

from ragvault.core.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

Extractor = Callable[[bytes], str]


def normalize_text(text: str) -> str:
    """Normalize extracted text: NFC, unix newlines, collapsed blank runs, stripped."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def extract_plain_text(data: bytes) -> str:
    return _decode(data)


def extract_html(data: bytes) -> str:
    soup = BeautifulSoup(_decode(data), "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return soup.get_text(separator="\n")


def extract_pdf(data: bytes) -> str:
    pdf_reader = PyPDF2.PdfReader(BytesIO(data))
    pages = [page.extract_text() or "" for page in pdf_reader.pages]
    return "\n\n".join(pages)


EXTRACTORS: dict[str, Extractor] = {
    "text/plain": extract_plain_text,
    "text/markdown": extract_plain_text,
    "text/csv": extract_plain_text,
    "application/json": extract_plain_text,
    "text/html": extract_html,
    "application/xhtml+xml": extract_html,
    "application/pdf": extract_pdf,
}


def get_extractor(mime_type: str) -> Extractor | None:
    """Look up the extractor for a MIME type; any other text/* falls back to plain text."""
    base_type = mime_type.split(";", 1)[0].strip().lower()
    extractor = EXTRACTORS.get(base_type)
    if extractor is None and base_type.startswith("text/"):
        extractor = extract_plain_text
    return extractor


def extract_text(data: bytes, mime_type: str, filename: str = "") -> str:
    """
    Extract normalized plain text from raw bytes.

    Args:
        data: Raw file bytes
        mime_type: MIME type of the payload
        filename: Used in log and error messages only

    Returns:
        Normalized, non-empty text

    Raises:
        UnsupportedFormatError: If the type has no extractor, the payload cannot be
            parsed, or extraction yields no readable text
    """
    extractor = get_extractor(mime_type)
    if extractor is None:
        raise UnsupportedFormatError(f"Cannot extract text from {mime_type} ({filename or 'upload'})")

    try:
        raw_text = extractor(data)
    except Exception as e:
        logger.error(f"Failed to extract text from {filename or 'upload'} ({mime_type}): {e}")
        raise UnsupportedFormatError(f"Failed to extract text: {e}") from e

    text = normalize_text(raw_text)
    if not text:
        raise UnsupportedFormatError(f"{filename or 'Upload'} contains no readable text")

    logger.info(f"Extracted {len(text)} characters from {filename or 'upload'} ({mime_type})")
    return text
