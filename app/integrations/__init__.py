# External collaborators: OCR, AI extraction, PDF text, blob storage, email
from .base import BaseServiceClient
from .ocr_client import OcrClient
from .ai_extractor import AiExtractionClient
from .pdf_text import extract_pdf_text
from .storage import LocalBlobStorage, get_storage
from .notifier import EmailNotifier

__all__ = [
    "BaseServiceClient",
    "OcrClient",
    "AiExtractionClient",
    "extract_pdf_text",
    "LocalBlobStorage",
    "get_storage",
    "EmailNotifier",
]
