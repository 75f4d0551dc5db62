"""
Document Parsing Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Union, Dict, Any
from uuid import UUID
from datetime import date

from .base import StrictModel

DocumentKind = Literal["slip", "invoice", "ai"]

class ParseDocumentRequest(StrictModel):
    kind: DocumentKind = "slip"
    raw_text: Optional[str] = None
    ai_response: Optional[Union[Dict[str, Any], str]] = None
    match: bool = True

class MatchRequest(StrictModel):
    description: str = Field(..., min_length=1)
    threshold: Optional[float] = Field(None, ge=0, le=1)

class ParsedLineItemSchema(BaseModel):
    description: str
    quantity: int
    unit_price: Optional[float] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[str] = None
    raw_text: str = ""
    matched_item_id: Optional[UUID] = None
    matched_item_name: Optional[str] = None
    confidence: Optional[float] = None

class ParsedDocumentSchema(BaseModel):
    raw_text: str = ""
    document_date: Optional[str] = None
    supplier_name: Optional[str] = None
    total_amount: Optional[float] = None
    items: List[ParsedLineItemSchema] = []
    confidence: Optional[float] = None

class MatchCandidateSchema(BaseModel):
    item_id: UUID
    item_name: str
    item_code: Optional[str] = None
    score: float
    confidence: float

class MatchResultSchema(BaseModel):
    query: str
    best: Optional[MatchCandidateSchema] = None
    score: float
    confidence: float
    alternates: List[MatchCandidateSchema] = []

class DocumentImportResponse(BaseModel):
    storage_path: str
    file_name: str
    extraction: str  # ocr, ai, pdf
    document: ParsedDocumentSchema

class InvoiceSaveRequest(StrictModel):
    storage_path: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    document: ParsedDocumentSchema
    purchase_order_id: Optional[UUID] = None

class InvoiceResponse(BaseModel):
    id: UUID
    purchase_order_id: Optional[UUID]
    file_path: str
    file_name: Optional[str]
    supplier_name: Optional[str]
    invoice_date: Optional[date]
    total_amount: Optional[float]
    uploaded_by: Optional[UUID]

    class Config:
        from_attributes = True
