"""
Adjustment Request API - submit, review and link-approve stock decreases
"""
from fastapi import APIRouter, Depends, Query, BackgroundTasks, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.integrations import get_storage
from app.services import AdjustmentService, adjustment_import, notification_service
from app.schemas import (
    AdjustmentRequestCreate, ReviewRequest, TokenReviewRequest,
    AdjustmentRequestResponse, AdjustmentSubmitResponse, AdjustmentImportResponse, ImportRowError,
)
from .deps import get_actor_id, get_optional_actor_id

logger = logging.getLogger(__name__)

adjustments_router = APIRouter(prefix="/adjustments", tags=["adjustments"])


@adjustments_router.post("", response_model=AdjustmentSubmitResponse, status_code=201)
async def submit_adjustment(
    data: AdjustmentRequestCreate,
    background_tasks: BackgroundTasks,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Submit a decrease request; approvers are emailed in the background"""
    request, token = AdjustmentService.submit_request(db, data, actor_id)

    notification = notification_service.build_adjustment_notification(db, request, token)
    if notification.recipients:
        background_tasks.add_task(notification_service.send_notification, notification)
    else:
        logger.warning(f"Adjustment request {request.id} has no approver to notify")

    return AdjustmentSubmitResponse(
        request=AdjustmentRequestResponse.model_validate(request),
        approval_link_issued=token is not None,
        notified_recipients=len(notification.recipients),
    )


@adjustments_router.post("/photos", status_code=201)
async def upload_adjustment_photo(
    file: UploadFile = File(...),
    actor_id: UUID = Depends(get_actor_id),
):
    """Upload proof first, then pass the returned path as photo_path on submit"""
    content = await file.read()
    path = AdjustmentService.upload_photo(
        content, file.filename or "photo", file.content_type or "application/octet-stream"
    )
    logger.info(f"Adjustment photo {path} uploaded by {actor_id}")
    return {"photo_path": path}


@adjustments_router.post("/import", response_model=AdjustmentImportResponse, status_code=201)
async def import_adjustments(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    approver_role_target: Optional[str] = Form(None),
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Bulk decrease requests from an .xlsx or .csv sheet"""
    content = await file.read()
    result = adjustment_import.import_adjustment_requests(
        db, content, file.filename or "sheet", actor_id, approver_role_target
    )

    for request in result.created:
        notification = notification_service.build_adjustment_notification(db, request, None)
        if notification.recipients:
            background_tasks.add_task(notification_service.send_notification, notification)

    return AdjustmentImportResponse(
        created=[AdjustmentRequestResponse.model_validate(r) for r in result.created],
        errors=[ImportRowError(row_number=e.row_number, message=e.message) for e in result.errors],
    )


@adjustments_router.get("", response_model=List[AdjustmentRequestResponse])
async def list_my_adjustments(
    status: Optional[str] = Query(None),
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return AdjustmentService.list_for_requester(db, actor_id, status)


@adjustments_router.get("/pending", response_model=List[AdjustmentRequestResponse])
async def list_pending_adjustments(
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Pending requests the caller may review"""
    return AdjustmentService.list_pending_for_reviewer(db, actor_id)


@adjustments_router.get("/{request_id}", response_model=AdjustmentRequestResponse)
async def get_adjustment(request_id: UUID, db: Session = Depends(get_db)):
    return AdjustmentService.get_request(db, request_id)


@adjustments_router.get("/{request_id}/photo-url")
async def get_adjustment_photo_url(request_id: UUID, db: Session = Depends(get_db)):
    request = AdjustmentService.get_request(db, request_id)
    if not request.photo_path:
        raise ValidationError(f"Adjustment request {request_id} has no photo")
    return {"url": get_storage().get_signed_download_url(request.photo_path)}


@adjustments_router.post("/{request_id}/review", response_model=AdjustmentRequestResponse)
async def review_adjustment(
    request_id: UUID,
    data: ReviewRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return AdjustmentService.review_request(db, request_id, actor_id, data.decision, data.notes)


@adjustments_router.get("/{request_id}/verify", response_model=AdjustmentRequestResponse)
async def verify_approval_link(
    request_id: UUID,
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Check an emailed link before showing the review page"""
    return AdjustmentService.verify_approval_token(db, request_id, token)


@adjustments_router.post("/{request_id}/token-review", response_model=AdjustmentRequestResponse)
async def review_adjustment_with_token(
    request_id: UUID,
    data: TokenReviewRequest,
    actor_id: Optional[UUID] = Depends(get_optional_actor_id),
    db: Session = Depends(get_db),
):
    return AdjustmentService.review_with_token(db, request_id, data.token, data.decision, data.notes, actor_id)
