"""
Urgent Purchase API - slip-based stock increases and their approval
"""
from fastapi import APIRouter, Depends, Query, BackgroundTasks
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.core.database import get_db
from app.services import UrgentPurchaseService, notification_service
from app.schemas import UrgentPurchaseCreate, UrgentPurchaseUpdate, UrgentPurchaseResponse, ReviewRequest
from .deps import get_actor_id

logger = logging.getLogger(__name__)

urgent_purchases_router = APIRouter(prefix="/urgent-purchases", tags=["urgent-purchases"])


@urgent_purchases_router.post("", response_model=UrgentPurchaseResponse, status_code=201)
async def create_urgent_purchase(
    data: UrgentPurchaseCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return UrgentPurchaseService.create_draft(db, data, actor_id)


@urgent_purchases_router.get("", response_model=List[UrgentPurchaseResponse])
async def list_urgent_purchases(
    status: Optional[str] = Query(None),
    requester_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
):
    return UrgentPurchaseService.list_entries(db, status, requester_id)


@urgent_purchases_router.get("/pending", response_model=List[UrgentPurchaseResponse])
async def list_pending_urgent_purchases(
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return UrgentPurchaseService.list_pending_for_reviewer(db, actor_id)


@urgent_purchases_router.get("/{entry_id}", response_model=UrgentPurchaseResponse)
async def get_urgent_purchase(entry_id: UUID, db: Session = Depends(get_db)):
    return UrgentPurchaseService.get_entry(db, entry_id)


@urgent_purchases_router.patch("/{entry_id}", response_model=UrgentPurchaseResponse)
async def update_urgent_purchase(
    entry_id: UUID,
    data: UrgentPurchaseUpdate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return UrgentPurchaseService.update_draft(db, entry_id, data, actor_id)


@urgent_purchases_router.post("/{entry_id}/submit", response_model=UrgentPurchaseResponse)
async def submit_urgent_purchase(
    entry_id: UUID,
    background_tasks: BackgroundTasks,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    entry = UrgentPurchaseService.submit_for_approval(db, entry_id, actor_id)
    notification = notification_service.build_urgent_purchase_notification(db, entry)
    if notification.recipients:
        background_tasks.add_task(notification_service.send_notification, notification)
    else:
        logger.warning(f"Urgent purchase {entry.id} has no approver to notify")
    return entry


@urgent_purchases_router.post("/{entry_id}/review", response_model=UrgentPurchaseResponse)
async def review_urgent_purchase(
    entry_id: UUID,
    data: ReviewRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Approve (receives every line) or reject a submitted entry"""
    return UrgentPurchaseService.review(db, entry_id, actor_id, data.decision, data.notes)
