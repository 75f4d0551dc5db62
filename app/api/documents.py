"""
Documents API - structure slip/invoice text and match lines to the catalog
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.services import CatalogMatcher, document_import_service
from app.services.catalog_matcher import load_catalog, MatchCandidate
from app.services.document_parser import parse_document, document_to_dict, document_from_dict
from app.schemas import (
    ParseDocumentRequest, MatchRequest, ParsedDocumentSchema, MatchResultSchema,
    DocumentImportResponse, InvoiceSaveRequest, InvoiceResponse,
)
from .deps import get_actor_id

logger = logging.getLogger(__name__)

documents_router = APIRouter(prefix="/documents", tags=["documents"])


def _candidate(candidate: MatchCandidate) -> dict:
    return {
        "item_id": candidate.entry.id,
        "item_name": candidate.entry.name,
        "item_code": candidate.entry.code,
        "score": candidate.score,
        "confidence": round(candidate.confidence, 4),
    }


@documents_router.post("/parse", response_model=ParsedDocumentSchema)
async def parse(data: ParseDocumentRequest, db: Session = Depends(get_db)):
    """Structure OCR text or a stored AI response without uploading anything"""
    if data.kind == "ai":
        if data.ai_response is None:
            raise ValidationError("ai_response is required for kind 'ai'")
        document = parse_document(data.ai_response, "ai")
    else:
        if not data.raw_text:
            raise ValidationError("raw_text is required")
        document = parse_document(data.raw_text, data.kind)

    if data.match:
        document = CatalogMatcher(load_catalog(db)).match_document(document)
    return document_to_dict(document)


@documents_router.post("/import", response_model=DocumentImportResponse)
async def import_file(
    file: UploadFile = File(...),
    kind: str = Form("slip"),
    use_ai: bool = Form(False),
    match: bool = Form(True),
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Upload a slip or invoice and get back matched lines for review"""
    content = await file.read()
    imported = await document_import_service.import_document(
        db,
        content,
        file.filename or "upload",
        file.content_type or "application/octet-stream",
        kind=kind,
        use_ai=use_ai,
        match=match,
    )
    logger.info(f"Document {imported.file_name} imported by {actor_id}")
    return {
        "storage_path": imported.storage_path,
        "file_name": imported.file_name,
        "extraction": imported.extraction,
        "document": document_to_dict(imported.document),
    }


@documents_router.post("/match", response_model=MatchResultSchema)
async def match(data: MatchRequest, db: Session = Depends(get_db)):
    result = CatalogMatcher(load_catalog(db), data.threshold).match(data.description)
    best: Optional[dict] = None
    if result.best is not None:
        best = _candidate(MatchCandidate(entry=result.best, score=result.score))
    return {
        "query": result.query,
        "best": best,
        "score": result.score,
        "confidence": result.confidence,
        "alternates": [_candidate(candidate) for candidate in result.alternates],
    }


# ========== Invoices ==========

@documents_router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def save_invoice(
    data: InvoiceSaveRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    document = document_from_dict(data.document.model_dump())
    return document_import_service.save_invoice(
        db, data.storage_path, data.file_name, document, actor_id, data.purchase_order_id,
    )


@documents_router.get("/invoices/{invoice_id}/download-url")
async def invoice_download_url(invoice_id: UUID, db: Session = Depends(get_db)):
    return {"url": document_import_service.get_invoice_download_url(db, invoice_id)}
