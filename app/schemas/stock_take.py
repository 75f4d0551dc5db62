"""
Stock Take Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime
from uuid import UUID

from .base import StrictModel

class StockTakeCreate(StrictModel):
    inventory_item_id: UUID
    system_quantity_at_count: int = Field(..., ge=0)
    physical_counted_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None

class StockTakeUpdate(StrictModel):
    notes: Optional[str] = None
    is_variance_resolved: Optional[bool] = None

class StockTakeResponse(BaseModel):
    id: UUID
    inventory_item_id: UUID
    system_quantity_at_count: int
    physical_counted_quantity: int
    variance: int
    counted_by_user_id: UUID
    counted_at: datetime
    notes: Optional[str]
    is_variance_resolved: bool

    class Config:
        from_attributes = True

class VarianceAdjustmentRequest(StrictModel):
    inventory_batch_id: Optional[UUID] = None
    approver_role_target: Optional[Literal["admin", "owner", "doctor"]] = None
