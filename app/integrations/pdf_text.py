"""
PDF text extraction for invoices that carry a text layer
"""
import io
import logging

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text of every page; empty for scanned PDFs"""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise ValidationError(f"Unreadable PDF: {e}")

    text = "\n".join(pages)
    logger.info(f"Extracted {len(text)} characters from {len(pages)} PDF pages")
    return text
