"""
Urgent Purchase Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date, datetime
from uuid import UUID

from .base import StrictModel

class UrgentPurchaseItemIn(StrictModel):
    inventory_item_id: UUID
    matched_item_name: Optional[str] = None  # Defaults to the catalog name
    quantity: int = Field(..., gt=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    slip_text: Optional[str] = None

class UrgentPurchaseCreate(StrictModel):
    items: List[UrgentPurchaseItemIn] = []
    slip_image_path: Optional[str] = None
    slip_filename: Optional[str] = None
    invoice_delivery_date: Optional[date] = None
    confidence_score: Optional[float] = Field(None, ge=0, le=1)
    target_approval_role: Optional[Literal["admin", "owner", "doctor"]] = None
    notes: Optional[str] = None

class UrgentPurchaseUpdate(StrictModel):
    items: Optional[List[UrgentPurchaseItemIn]] = None
    invoice_delivery_date: Optional[date] = None
    target_approval_role: Optional[Literal["admin", "owner", "doctor"]] = None
    notes: Optional[str] = None

class UrgentPurchaseItemResponse(BaseModel):
    id: UUID
    line_number: int
    inventory_item_id: UUID
    matched_item_name: str
    quantity: int
    batch_number: Optional[str]
    expiry_date: Optional[date]
    slip_text: Optional[str]

    class Config:
        from_attributes = True

class UrgentPurchaseResponse(BaseModel):
    id: UUID
    status: str
    slip_image_path: Optional[str]
    slip_filename: Optional[str]
    invoice_delivery_date: Optional[date]
    confidence_score: Optional[float]
    target_approval_role: Optional[str]
    notes: Optional[str]
    requested_by_user_id: UUID
    requested_at: datetime
    submitted_at: Optional[datetime]
    reviewed_by_user_id: Optional[UUID]
    reviewed_at: Optional[datetime]
    reviewer_notes: Optional[str]
    items: List[UrgentPurchaseItemResponse] = []

    class Config:
        from_attributes = True
