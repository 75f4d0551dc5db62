"""
Receiving API - goods in against purchase-order lines
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from app.core.database import get_db
from app.services import StockService
from app.schemas import ReceiveLineRequest
from .deps import get_actor_id

receiving_router = APIRouter(prefix="/receiving", tags=["receiving"])


@receiving_router.post("/po-items/{po_item_id}/receive")
async def receive_purchase_order_line(
    po_item_id: UUID,
    data: ReceiveLineRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    batch_id = StockService.receive_batch(
        db, po_item_id, data.quantity, actor_id,
        batch_number=data.batch_number,
        expiry_date=data.expiry_date,
        purchase_price=data.purchase_price,
    )
    return {"po_item_id": str(po_item_id), "batch_id": str(batch_id) if batch_id else None, "received": data.quantity}
