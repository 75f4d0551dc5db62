"""
Adjustment Service - decrease-stock requests and their approval
"""
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import datetime, timedelta
import hashlib
import hmac
import logging
import secrets

from app.core.config import settings
from app.core.exceptions import (
    ValidationError, NotFoundError, InsufficientStock, Unauthorized,
    AlreadyResolved, InvalidOrExpiredToken,
)
from app.integrations import LocalBlobStorage, get_storage
from app.integrations.storage import BUCKET_ADJUSTMENTS
from app.models import (
    AdjustmentRequest, AdjustmentStatus, AdjustmentReason, InventoryBatch, ChangeType,
)
from app.models.base import utc_now, as_utc
from app.schemas.adjustment import AdjustmentRequestCreate
from .stock_service import StockService
from . import user_service

logger = logging.getLogger(__name__)

DECISIONS = {AdjustmentStatus.APPROVED.value, AdjustmentStatus.REJECTED.value}
PHOTO_TYPES = {"image/jpeg", "image/png", "image/webp", "image/heic"}
MAX_PHOTO_BYTES = 10 * 1024 * 1024


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AdjustmentService:
    """Adjustment request workflow: pending -> approved | rejected"""

    @staticmethod
    def upload_photo(
        data: bytes,
        file_name: str,
        content_type: str,
        storage: Optional[LocalBlobStorage] = None,
    ) -> str:
        """Store proof for a request before it is submitted; returns the storage path"""
        if content_type not in PHOTO_TYPES:
            raise ValidationError(f"Unsupported photo type '{content_type}' for {file_name}")
        if len(data) > MAX_PHOTO_BYTES:
            raise ValidationError(f"Photo exceeds {MAX_PHOTO_BYTES // (1024 * 1024)} MB")
        storage = storage or get_storage()
        return storage.upload(BUCKET_ADJUSTMENTS, file_name, data)

    @staticmethod
    def submit_request(
        db: Session,
        data: AdjustmentRequestCreate,
        requester_id: UUID,
        storage: Optional[LocalBlobStorage] = None,
    ) -> Tuple[AdjustmentRequest, Optional[str]]:
        """
        Validate and store a pending request.
        Returns the request and, when link approval was asked for, the plain
        approval token. Only its hash is persisted.
        """
        requester = user_service.get_active_user(db, requester_id)
        item = StockService.get_item(db, data.inventory_item_id)

        if data.quantity_to_decrease <= 0:
            raise ValidationError("Quantity to decrease must be positive")
        if not (data.notes or "").strip():
            raise ValidationError("Notes are required for an adjustment request")
        reason = AdjustmentReason(data.reason)

        if data.photo_path:
            storage = storage or get_storage()
            if not data.photo_path.startswith(f"{BUCKET_ADJUSTMENTS}/") or not storage.exists(data.photo_path):
                raise ValidationError(f"Photo {data.photo_path} has not been uploaded")

        if item.is_batched:
            if data.inventory_batch_id is None:
                raise ValidationError(f"Item '{item.item_name}' is batch tracked; choose a batch")
            batch = db.query(InventoryBatch).filter(InventoryBatch.id == data.inventory_batch_id).first()
            if not batch:
                raise NotFoundError("Inventory batch", data.inventory_batch_id)
            if batch.inventory_item_id != item.id:
                raise ValidationError(f"Batch {batch.id} does not belong to item '{item.item_name}'")
            if data.quantity_to_decrease > batch.quantity_on_hand:
                raise InsufficientStock(batch.quantity_on_hand, data.quantity_to_decrease, str(batch.id))
        else:
            if data.inventory_batch_id is not None:
                raise ValidationError(f"Item '{item.item_name}' is not batch tracked")
            if data.quantity_to_decrease > item.quantity:
                raise InsufficientStock(item.quantity, data.quantity_to_decrease)

        token = None
        token_hash = None
        token_expires_at = None
        if data.issue_token or data.custom_approver_emails:
            token = secrets.token_urlsafe(32)
            token_hash = hash_token(token)
            token_expires_at = utc_now() + timedelta(hours=settings.APPROVAL_TOKEN_TTL_HOURS)

        request = AdjustmentRequest(
            inventory_item_id=item.id,
            inventory_batch_id=data.inventory_batch_id,
            quantity_to_decrease=data.quantity_to_decrease,
            reason=reason.value,
            notes=data.notes.strip(),
            photo_path=data.photo_path,
            requested_by_user_id=requester.id,
            requested_at=utc_now(),
            status=AdjustmentStatus.PENDING.value,
            approver_role_target=data.approver_role_target,
            custom_approver_emails=[str(email) for email in data.custom_approver_emails] or None,
            approval_token_hash=token_hash,
            approval_token_expires_at=token_expires_at,
        )
        db.add(request)
        db.commit()
        db.refresh(request)

        logger.info(
            f"Adjustment request {request.id} submitted by {requester.username}: "
            f"-{request.quantity_to_decrease} '{item.item_name}' ({request.reason})"
        )
        return request, token

    @staticmethod
    def get_request(db: Session, request_id: UUID) -> AdjustmentRequest:
        request = db.query(AdjustmentRequest).filter(AdjustmentRequest.id == request_id).first()
        if not request:
            raise NotFoundError("Adjustment request", request_id)
        return request

    @staticmethod
    def review_request(
        db: Session,
        request_id: UUID,
        actor_id: UUID,
        decision: str,
        notes: Optional[str] = None,
    ) -> AdjustmentRequest:
        """In-app review by a signed-in approver"""
        return AdjustmentService._review(db, request_id, actor_id, decision, notes, via_token=False)

    @staticmethod
    def verify_approval_token(db: Session, request_id: UUID, token: str) -> AdjustmentRequest:
        """
        Check a link token: exact match, not consumed, not expired.
        Read only; any failure is InvalidOrExpiredToken.
        """
        request = db.query(AdjustmentRequest).filter(AdjustmentRequest.id == request_id).first()
        if not request or not token:
            raise InvalidOrExpiredToken()
        if request.status != AdjustmentStatus.PENDING.value or not request.approval_token_hash:
            raise InvalidOrExpiredToken()
        if not hmac.compare_digest(hash_token(token), request.approval_token_hash):
            logger.warning(f"Approval token mismatch for adjustment request {request_id}")
            raise InvalidOrExpiredToken()
        expires_at = as_utc(request.approval_token_expires_at)
        if expires_at is None or utc_now() >= expires_at:
            raise InvalidOrExpiredToken()
        return request

    @staticmethod
    def review_with_token(
        db: Session,
        request_id: UUID,
        token: str,
        decision: str,
        notes: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> AdjustmentRequest:
        """Review through an emailed link; the token is consumed"""
        AdjustmentService.verify_approval_token(db, request_id, token)
        return AdjustmentService._review(db, request_id, actor_id, decision, notes, via_token=True)

    @staticmethod
    def _review(
        db: Session,
        request_id: UUID,
        actor_id: Optional[UUID],
        decision: str,
        notes: Optional[str],
        via_token: bool,
    ) -> AdjustmentRequest:
        if decision not in DECISIONS:
            raise ValidationError(f"Decision must be one of {sorted(DECISIONS)}")
        notes = (notes or "").strip() or None
        if decision == AdjustmentStatus.REJECTED.value and not notes:
            raise ValidationError("Reviewer notes are required when rejecting")

        try:
            request = db.query(AdjustmentRequest).filter(
                AdjustmentRequest.id == request_id
            ).with_for_update().first()
            if not request:
                raise NotFoundError("Adjustment request", request_id)
            if request.status != AdjustmentStatus.PENDING.value:
                raise AlreadyResolved("Adjustment request", request_id, request.status)

            if actor_id is not None and actor_id == request.requested_by_user_id:
                raise Unauthorized("Requesters cannot review their own adjustment request")
            if not via_token:
                actor = user_service.get_active_user(db, actor_id)
                if not user_service.can_review_target(actor, request.approver_role_target):
                    raise Unauthorized(
                        f"Role '{actor.role}' cannot review requests for "
                        f"'{request.approver_role_target or 'any approver'}'"
                    )
            elif actor_id is not None:
                user_service.get_active_user(db, actor_id)

            if decision == AdjustmentStatus.APPROVED.value:
                change_type = ChangeType.BATCH_ADJUSTMENT if request.inventory_batch_id else ChangeType.ADJUSTMENT
                StockService.adjust_quantity(
                    db,
                    request.inventory_item_id,
                    -request.quantity_to_decrease,
                    change_type,
                    actor_id,
                    notes=f"Adjustment request {request.id} ({request.reason}): {request.notes}",
                    batch_id=request.inventory_batch_id,
                    commit=False,
                )

            request.status = decision
            request.reviewed_by_user_id = actor_id
            request.reviewed_at = utc_now()
            request.reviewer_notes = notes
            request.approval_token_hash = None
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(request)
        logger.info(
            f"Adjustment request {request.id} {decision} by {actor_id or 'approval link'}"
        )
        return request

    # ========== Queries ==========

    @staticmethod
    def list_pending_for_reviewer(db: Session, reviewer_id: UUID) -> List[AdjustmentRequest]:
        """Pending requests this reviewer may act on, never their own"""
        reviewer = user_service.get_active_user(db, reviewer_id)
        targets = user_service.visible_target_roles(reviewer.role)
        if not targets:
            return []

        role_filters = [AdjustmentRequest.approver_role_target == role for role in targets if role]
        if None in targets:
            role_filters.append(AdjustmentRequest.approver_role_target.is_(None))

        return db.query(AdjustmentRequest).filter(
            AdjustmentRequest.status == AdjustmentStatus.PENDING.value,
            AdjustmentRequest.requested_by_user_id != reviewer.id,
            or_(*role_filters),
        ).order_by(AdjustmentRequest.requested_at).all()

    @staticmethod
    def list_for_requester(
        db: Session,
        requester_id: UUID,
        status: Optional[str] = None,
    ) -> List[AdjustmentRequest]:
        query = db.query(AdjustmentRequest).filter(AdjustmentRequest.requested_by_user_id == requester_id)
        if status:
            query = query.filter(AdjustmentRequest.status == status)
        return query.order_by(AdjustmentRequest.requested_at.desc()).all()

    @staticmethod
    def expire_stale_tokens(db: Session, now: Optional[datetime] = None) -> int:
        """Drop expired link tokens; the requests stay pending for in-app review"""
        now = now or utc_now()
        requests = db.query(AdjustmentRequest).filter(
            AdjustmentRequest.approval_token_hash.isnot(None),
            AdjustmentRequest.approval_token_expires_at.isnot(None),
        ).all()

        expired = 0
        for request in requests:
            if as_utc(request.approval_token_expires_at) <= now:
                request.approval_token_hash = None
                expired += 1

        if expired:
            db.commit()
            logger.info(f"Cleared {expired} expired approval tokens")
        return expired
