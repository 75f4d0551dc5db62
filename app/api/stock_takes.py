"""
Stock Take API - physical counts and variance follow-up
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.core.database import get_db
from app.services import StockTakeService
from app.schemas import (
    StockTakeCreate, StockTakeUpdate, StockTakeResponse, VarianceAdjustmentRequest,
    AdjustmentRequestResponse,
)
from .deps import get_actor_id

stock_takes_router = APIRouter(prefix="/stock-takes", tags=["stock-takes"])


@stock_takes_router.post("", response_model=StockTakeResponse, status_code=201)
async def record_stock_take(
    data: StockTakeCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return StockTakeService.record_stock_take(
        db, data.inventory_item_id, data.system_quantity_at_count,
        data.physical_counted_quantity, actor_id, data.notes,
    )


@stock_takes_router.get("", response_model=List[StockTakeResponse])
async def list_stock_takes(
    item_id: Optional[UUID] = Query(None),
    unresolved_only: bool = Query(False),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    return StockTakeService.list_stock_takes(db, item_id, unresolved_only, start, end)


@stock_takes_router.get("/{stock_take_id}", response_model=StockTakeResponse)
async def get_stock_take(stock_take_id: UUID, db: Session = Depends(get_db)):
    return StockTakeService.get_stock_take(db, stock_take_id)


@stock_takes_router.patch("/{stock_take_id}", response_model=StockTakeResponse)
async def update_stock_take(
    stock_take_id: UUID,
    data: StockTakeUpdate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return StockTakeService.update_stock_take(db, stock_take_id, data.notes, data.is_variance_resolved)


@stock_takes_router.post("/{stock_take_id}/adjustment-request", response_model=AdjustmentRequestResponse, status_code=201)
async def open_variance_adjustment(
    stock_take_id: UUID,
    data: VarianceAdjustmentRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Turn a counted shortfall into an adjustment request for review"""
    request, _ = StockTakeService.create_variance_adjustment(
        db, stock_take_id, actor_id, data.inventory_batch_id, data.approver_role_target,
    )
    return request
