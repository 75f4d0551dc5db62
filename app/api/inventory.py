"""
Inventory API - catalog, balances, logs and direct stock movements
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.core.config import settings
from app.core.database import get_db
from app.services import StockService
from app.schemas import (
    InventoryItemCreate, AdjustQuantityRequest, MaintenanceIntervalRequest, MarkServicedRequest,
    InventoryItemResponse, InventoryBatchResponse, InventoryLogResponse,
)
from .deps import get_actor_id

inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


# ========== Items ==========

@inventory_router.get("/items", response_model=List[InventoryItemResponse])
async def list_items(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return StockService.list_items(db, search, category)


@inventory_router.post("/items", response_model=InventoryItemResponse, status_code=201)
async def create_item(
    data: InventoryItemCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return StockService.create_item(db, data, actor_id)


@inventory_router.get("/items/{item_id}", response_model=InventoryItemResponse)
async def get_item(item_id: UUID, db: Session = Depends(get_db)):
    return StockService.get_item(db, item_id)


@inventory_router.get("/items/{item_id}/batches", response_model=List[InventoryBatchResponse])
async def get_item_batches(
    item_id: UUID,
    include_empty: bool = Query(False),
    db: Session = Depends(get_db),
):
    StockService.get_item(db, item_id)
    return StockService.get_batches(db, item_id, include_empty)


@inventory_router.post("/items/{item_id}/adjust")
async def adjust_item_quantity(
    item_id: UUID,
    data: AdjustQuantityRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Record usage, disposal or other direct movement"""
    new_quantity = StockService.adjust_quantity(
        db, item_id, data.quantity_change, data.change_type, actor_id,
        notes=data.notes, batch_id=data.batch_id,
    )
    return {"item_id": str(item_id), "batch_id": str(data.batch_id) if data.batch_id else None, "quantity": new_quantity}


# ========== Reports ==========

@inventory_router.get("/low-stock", response_model=List[InventoryItemResponse])
async def low_stock(db: Session = Depends(get_db)):
    return StockService.get_low_stock_items(db)


@inventory_router.get("/expiring-batches", response_model=List[InventoryBatchResponse])
async def expiring_batches(
    days: int = Query(settings.EXPIRY_WARNING_DAYS, ge=0, le=3650),
    db: Session = Depends(get_db),
):
    return StockService.get_expiring_batches(db, days)


@inventory_router.get("/logs", response_model=List[InventoryLogResponse])
async def inventory_logs(
    item_id: Optional[UUID] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    change_type: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return StockService.get_logs(db, item_id, start, end, change_type, search, limit)


# ========== Maintenance ==========

@inventory_router.get("/maintenance-due", response_model=List[InventoryItemResponse])
async def maintenance_due(
    days_warning: int = Query(7, ge=0, le=365),
    db: Session = Depends(get_db),
):
    return StockService.get_items_due_for_maintenance(db, days_warning)


@inventory_router.put("/items/{item_id}/maintenance-interval", response_model=InventoryItemResponse)
async def set_maintenance_interval(
    item_id: UUID,
    data: MaintenanceIntervalRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return StockService.set_maintenance_interval(db, item_id, data.interval_value, data.interval_unit, actor_id)


@inventory_router.post("/items/{item_id}/serviced", response_model=InventoryItemResponse)
async def mark_serviced(
    item_id: UUID,
    data: MarkServicedRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return StockService.mark_serviced(db, item_id, data.serviced_on)
