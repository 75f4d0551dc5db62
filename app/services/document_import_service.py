"""
Document Import Service - upload, extract, structure and match a slip or invoice

Everything here finishes before any stock transaction opens. A failed
extraction removes the uploaded file and leaves no database record behind.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID
import base64
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ValidationError, NotFoundError
from app.integrations import OcrClient, AiExtractionClient, LocalBlobStorage, extract_pdf_text, get_storage
from app.integrations.storage import BUCKET_SLIPS, BUCKET_INVOICES
from app.models import Invoice, PurchaseOrder
from .catalog_matcher import CatalogMatcher, load_catalog
from .document_parser import ParsedDocument, parse_document, parse_ai_response
from .stock_service import coerce_date

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/heic"}
PDF_TYPE = "application/pdf"
KINDS = {"slip", "invoice"}


@dataclass(frozen=True)
class ImportedDocument:
    storage_path: str
    file_name: str
    extraction: str  # ocr, ai or pdf
    document: ParsedDocument


def _validate_upload(data: bytes, file_name: str, content_type: str, kind: str):
    if kind not in KINDS:
        raise ValidationError(f"Document kind must be one of {sorted(KINDS)}")
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError(f"Uploaded file exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)} MB")
    if content_type not in IMAGE_TYPES and content_type != PDF_TYPE:
        raise ValidationError(f"Unsupported file type '{content_type}' for {file_name}")


async def _extract(
    data: bytes,
    file_name: str,
    content_type: str,
    kind: str,
    use_ai: bool,
    ocr_client: Optional[OcrClient],
    ai_client: Optional[AiExtractionClient],
):
    if content_type == PDF_TYPE:
        text = extract_pdf_text(data)
        if not text.strip():
            raise ValidationError(f"{file_name} has no text layer; upload a photo of the document instead")
        return "pdf", parse_document(text, kind)

    if use_ai:
        ai_client = ai_client or AiExtractionClient()
        data_url = f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"
        return "ai", parse_ai_response(await ai_client.extract_structured([data_url]))

    ocr_client = ocr_client or OcrClient()
    text = await ocr_client.extract(data, file_name, content_type)
    return "ocr", parse_document(text, kind)


async def import_document(
    db: Session,
    data: bytes,
    file_name: str,
    content_type: str,
    kind: str = "slip",
    use_ai: bool = False,
    match: bool = True,
    storage: Optional[LocalBlobStorage] = None,
    ocr_client: Optional[OcrClient] = None,
    ai_client: Optional[AiExtractionClient] = None,
) -> ImportedDocument:
    """Store the file, then turn it into a matched ParsedDocument ready for review"""
    _validate_upload(data, file_name, content_type, kind)
    storage = storage or get_storage()
    bucket = BUCKET_INVOICES if kind == "invoice" else BUCKET_SLIPS
    storage_path = storage.upload(bucket, file_name, data)

    try:
        extraction, document = await _extract(data, file_name, content_type, kind, use_ai, ocr_client, ai_client)
    except Exception as e:
        storage.delete(storage_path)
        logger.error(f"Extraction of {file_name} failed, upload removed: {e}")
        raise

    if match:
        document = CatalogMatcher(load_catalog(db)).match_document(document)

    logger.info(
        f"Imported {kind} {file_name} via {extraction}: {len(document.items)} lines, "
        f"confidence={document.confidence}"
    )
    return ImportedDocument(storage_path=storage_path, file_name=file_name, extraction=extraction, document=document)


def save_invoice(
    db: Session,
    storage_path: str,
    file_name: str,
    document: ParsedDocument,
    uploaded_by: UUID,
    purchase_order_id: Optional[UUID] = None,
) -> Invoice:
    """Record an imported invoice file with its parsed header"""
    if purchase_order_id is not None:
        if not db.query(PurchaseOrder).filter(PurchaseOrder.id == purchase_order_id).first():
            raise NotFoundError("Purchase order", purchase_order_id)

    invoice = Invoice(
        purchase_order_id=purchase_order_id,
        file_path=storage_path,
        file_name=file_name,
        supplier_name=document.supplier_name,
        invoice_date=coerce_date(document.document_date, "invoice date"),
        total_amount=document.total_amount,
        uploaded_by=uploaded_by,
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    logger.info(f"Invoice {invoice.id} saved for {invoice.supplier_name or 'unknown supplier'}")
    return invoice


def get_invoice_download_url(db: Session, invoice_id: UUID, storage: Optional[LocalBlobStorage] = None) -> str:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    storage = storage or get_storage()
    return storage.get_signed_download_url(invoice.file_path, settings.INVOICE_URL_TTL_SECONDS)
