"""
Inventory Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import date, datetime
from uuid import UUID

from app.models.inventory import ItemCategory, ChangeType
from .base import StrictModel

class InventoryItemCreate(StrictModel):
    item_name: str = Field(..., min_length=1, max_length=200)
    item_code: Optional[str] = Field(None, max_length=50)
    category: ItemCategory = ItemCategory.CONSUMABLES
    low_stock_threshold: int = Field(0, ge=0)
    is_batched: bool = False
    supplier_info: Optional[str] = None
    
    # Opening stock
    initial_quantity: int = Field(0, ge=0)
    initial_batch_number: Optional[str] = None
    initial_expiry_date: Optional[date] = None

class AdjustQuantityRequest(StrictModel):
    quantity_change: int
    change_type: ChangeType
    batch_id: Optional[UUID] = None
    notes: Optional[str] = None

class MaintenanceIntervalRequest(StrictModel):
    interval_value: int = Field(..., gt=0)
    interval_unit: Literal["days", "weeks", "months", "years"]

class InventoryItemResponse(BaseModel):
    id: UUID
    item_name: str
    item_code: Optional[str]
    category: str
    quantity: int
    low_stock_threshold: int
    is_batched: bool
    supplier_info: Optional[str] = None
    maintenance_interval: Optional[dict] = None
    next_maintenance_due_date: Optional[date] = None
    last_maintenance_date: Optional[date] = None

    class Config:
        from_attributes = True

class InventoryBatchResponse(BaseModel):
    id: UUID
    inventory_item_id: UUID
    batch_number: Optional[str]
    expiry_date: Optional[date]
    quantity_on_hand: int
    purchase_price_at_receipt: Optional[float]
    received_date: Optional[date]
    purchase_order_item_id: Optional[UUID] = None

    class Config:
        from_attributes = True

class InventoryLogResponse(BaseModel):
    id: UUID
    inventory_item_id: UUID
    inventory_batch_id: Optional[UUID]
    quantity_change: int
    quantity_after: int
    change_type: str
    user_id: Optional[UUID]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True

class MarkServicedRequest(StrictModel):
    serviced_on: Optional[date] = None
