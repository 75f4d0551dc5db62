"""
Adjustment Request Schemas
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime
from uuid import UUID

from app.models.adjustment import AdjustmentReason
from .base import StrictModel

ApproverRole = Literal["admin", "owner", "doctor"]

class AdjustmentRequestCreate(StrictModel):
    inventory_item_id: UUID
    inventory_batch_id: Optional[UUID] = None
    quantity_to_decrease: int = Field(..., gt=0)
    reason: AdjustmentReason
    notes: str = Field(..., min_length=1)
    photo_path: Optional[str] = None
    approver_role_target: Optional[ApproverRole] = None
    custom_approver_emails: List[EmailStr] = []
    issue_token: bool = False

class ReviewRequest(StrictModel):
    decision: Literal["approved", "rejected"]
    notes: Optional[str] = None

class TokenReviewRequest(ReviewRequest):
    token: str = Field(..., min_length=1)

class AdjustmentRequestResponse(BaseModel):
    id: UUID
    inventory_item_id: UUID
    inventory_batch_id: Optional[UUID]
    quantity_to_decrease: int
    reason: str
    notes: str
    photo_path: Optional[str]
    requested_by_user_id: UUID
    requested_at: datetime
    status: str
    approver_role_target: Optional[str]
    custom_approver_emails: Optional[List[str]]
    approval_token_expires_at: Optional[datetime]
    reviewed_by_user_id: Optional[UUID]
    reviewed_at: Optional[datetime]
    reviewer_notes: Optional[str]

    class Config:
        from_attributes = True

class AdjustmentSubmitResponse(BaseModel):
    request: AdjustmentRequestResponse
    approval_link_issued: bool = False
    notified_recipients: int = 0

class ImportRowError(BaseModel):
    row_number: int
    message: str

class AdjustmentImportResponse(BaseModel):
    created: List[AdjustmentRequestResponse] = []
    errors: List[ImportRowError] = []
