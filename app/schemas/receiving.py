"""
Purchase Order Receiving Schemas
"""
from pydantic import Field
from typing import Optional
from datetime import date
from decimal import Decimal

from .base import StrictModel

class ReceiveLineRequest(StrictModel):
    quantity: int = Field(..., gt=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    purchase_price: Optional[Decimal] = Field(None, ge=0)
