"""
Urgent Purchase Service - stock bought outside the purchase-order path

draft -> pending_approval -> approved | rejected
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional
from uuid import UUID
import logging

from app.core.exceptions import (
    ClinicStockError, ValidationError, NotFoundError, Unauthorized,
    AlreadyResolved, PartialMutationFailure,
)
from app.models import (
    UrgentPurchase, UrgentPurchaseItem, UrgentPurchaseStatus, InventoryItem, ChangeType,
)
from app.models.base import utc_now
from app.schemas.urgent_purchase import UrgentPurchaseCreate, UrgentPurchaseUpdate, UrgentPurchaseItemIn
from .stock_service import StockService
from . import user_service

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {UrgentPurchaseStatus.APPROVED.value, UrgentPurchaseStatus.REJECTED.value}
DECISIONS = TERMINAL_STATUSES


class UrgentPurchaseService:
    """Urgent purchase entries and their approval fan-out"""

    @staticmethod
    def _build_items(db: Session, items: List[UrgentPurchaseItemIn]) -> List[UrgentPurchaseItem]:
        built = []
        for line_number, line in enumerate(items, start=1):
            if line.quantity <= 0:
                raise ValidationError(f"Line {line_number}: quantity must be positive")
            item = db.query(InventoryItem).filter(InventoryItem.id == line.inventory_item_id).first()
            if not item:
                raise NotFoundError("Inventory item", line.inventory_item_id)
            built.append(UrgentPurchaseItem(
                line_number=line_number,
                inventory_item_id=item.id,
                matched_item_name=line.matched_item_name or item.item_name,
                quantity=line.quantity,
                batch_number=(line.batch_number or "").strip() or None,
                expiry_date=line.expiry_date,
                slip_text=line.slip_text,
            ))
        return built

    @staticmethod
    def _get_for_update(db: Session, entry_id: UUID) -> UrgentPurchase:
        entry = db.query(UrgentPurchase).filter(UrgentPurchase.id == entry_id).with_for_update().first()
        if not entry:
            raise NotFoundError("Urgent purchase", entry_id)
        return entry

    @staticmethod
    def create_draft(db: Session, data: UrgentPurchaseCreate, requester_id: UUID) -> UrgentPurchase:
        requester = user_service.get_active_user(db, requester_id)
        entry = UrgentPurchase(
            slip_image_path=data.slip_image_path,
            slip_filename=data.slip_filename,
            invoice_delivery_date=data.invoice_delivery_date,
            confidence_score=data.confidence_score,
            target_approval_role=data.target_approval_role,
            notes=data.notes,
            status=UrgentPurchaseStatus.DRAFT.value,
            requested_by_user_id=requester.id,
            requested_at=utc_now(),
        )
        entry.items = UrgentPurchaseService._build_items(db, data.items)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        logger.info(f"Urgent purchase draft {entry.id} created by {requester.username} with {len(entry.items)} lines")
        return entry

    @staticmethod
    def update_draft(db: Session, entry_id: UUID, data: UrgentPurchaseUpdate, actor_id: UUID) -> UrgentPurchase:
        """Edit a draft; only its requester may, and only while it is a draft"""
        try:
            entry = UrgentPurchaseService._get_for_update(db, entry_id)
            if entry.requested_by_user_id != actor_id:
                raise Unauthorized("Only the requester can edit an urgent purchase draft")
            if entry.status != UrgentPurchaseStatus.DRAFT.value:
                raise ValidationError(f"Urgent purchase {entry_id} is {entry.status} and can no longer be edited")

            if data.items is not None:
                entry.items = UrgentPurchaseService._build_items(db, data.items)
            if data.invoice_delivery_date is not None:
                entry.invoice_delivery_date = data.invoice_delivery_date
            if data.target_approval_role is not None:
                entry.target_approval_role = data.target_approval_role
            if data.notes is not None:
                entry.notes = data.notes
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        return entry

    @staticmethod
    def submit_for_approval(db: Session, entry_id: UUID, actor_id: UUID) -> UrgentPurchase:
        try:
            entry = UrgentPurchaseService._get_for_update(db, entry_id)
            if entry.requested_by_user_id != actor_id:
                raise Unauthorized("Only the requester can submit an urgent purchase")
            if entry.status != UrgentPurchaseStatus.DRAFT.value:
                raise AlreadyResolved("Urgent purchase", entry_id, entry.status)
            if not entry.items:
                raise ValidationError("An urgent purchase needs at least one line before submission")

            entry.status = UrgentPurchaseStatus.PENDING_APPROVAL.value
            entry.submitted_at = utc_now()
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        logger.info(f"Urgent purchase {entry.id} submitted for approval")
        return entry

    @staticmethod
    def _receive_line(db: Session, entry: UrgentPurchase, line: UrgentPurchaseItem, actor_id: UUID):
        item = db.query(InventoryItem).filter(InventoryItem.id == line.inventory_item_id).first()
        if not item:
            raise NotFoundError("Inventory item", line.inventory_item_id)
        notes = f"Urgent purchase approved: {entry.id}. Slip: {entry.slip_filename or 'N/A'}"

        if item.is_batched:
            batch = StockService.get_or_create_batch(
                db, item.id, line.batch_number, expiry_date=line.expiry_date, purchase_price=0
            )
            StockService.adjust_quantity(
                db, item.id, line.quantity, ChangeType.BATCH_STOCK_IN, actor_id,
                notes=notes, batch_id=batch.id, commit=False,
            )
        else:
            StockService.adjust_quantity(
                db, item.id, line.quantity, ChangeType.ADD, actor_id,
                notes=notes, commit=False,
            )

    @staticmethod
    def review(
        db: Session,
        entry_id: UUID,
        actor_id: UUID,
        decision: str,
        notes: Optional[str] = None,
    ) -> UrgentPurchase:
        """
        Approve or reject a submitted entry.

        Approval receives every line in one transaction. If any line fails,
        nothing is applied, the entry is moved to rejected with the failure in
        its reviewer notes, and PartialMutationFailure is raised.
        """
        if decision not in DECISIONS:
            raise ValidationError(f"Decision must be one of {sorted(DECISIONS)}")
        notes = (notes or "").strip() or None
        if decision == UrgentPurchaseStatus.REJECTED.value and not notes:
            raise ValidationError("Reviewer notes are required when rejecting")

        try:
            entry = UrgentPurchaseService._get_for_update(db, entry_id)
            if entry.status in TERMINAL_STATUSES:
                raise AlreadyResolved("Urgent purchase", entry_id, entry.status)
            if entry.status != UrgentPurchaseStatus.PENDING_APPROVAL.value:
                raise ValidationError(f"Urgent purchase {entry_id} has not been submitted for approval")
            if actor_id == entry.requested_by_user_id:
                raise Unauthorized("Requesters cannot review their own urgent purchase")
            actor = user_service.get_active_user(db, actor_id)
            if not user_service.can_review_target(actor, entry.target_approval_role):
                raise Unauthorized(
                    f"Role '{actor.role}' cannot review urgent purchases for "
                    f"'{entry.target_approval_role or 'any approver'}'"
                )
        except Exception:
            db.rollback()
            raise

        if decision == UrgentPurchaseStatus.REJECTED.value:
            entry.status = UrgentPurchaseStatus.REJECTED.value
            entry.reviewed_by_user_id = actor_id
            entry.reviewed_at = utc_now()
            entry.reviewer_notes = notes
            db.commit()
            db.refresh(entry)
            logger.info(f"Urgent purchase {entry.id} rejected by {actor.username}")
            return entry

        failed_line = None
        try:
            for line in entry.items:
                failed_line = line
                UrgentPurchaseService._receive_line(db, entry, line, actor_id)
            entry.status = UrgentPurchaseStatus.APPROVED.value
            entry.reviewed_by_user_id = actor_id
            entry.reviewed_at = utc_now()
            entry.reviewer_notes = notes
            db.commit()
        except (ClinicStockError, SQLAlchemyError) as e:
            db.rollback()
            UrgentPurchaseService._reject_after_failure(db, entry_id, actor_id, failed_line, e)
            raise PartialMutationFailure(
                entry_id, failed_line.line_number if failed_line else 0, str(e)
            ) from e

        db.refresh(entry)
        logger.info(f"Urgent purchase {entry.id} approved by {actor.username}: {len(entry.items)} lines received")
        return entry

    @staticmethod
    def _reject_after_failure(
        db: Session,
        entry_id: UUID,
        actor_id: UUID,
        failed_line: Optional[UrgentPurchaseItem],
        error: Exception,
    ):
        line_label = (
            f"line {failed_line.line_number} ({failed_line.matched_item_name})" if failed_line else "unknown line"
        )
        entry = db.query(UrgentPurchase).filter(UrgentPurchase.id == entry_id).with_for_update().first()
        if entry is None or entry.status != UrgentPurchaseStatus.PENDING_APPROVAL.value:
            state = entry.status if entry else "missing"
            db.rollback()
            logger.warning(
                f"Urgent purchase {entry_id} approval failed on {line_label} but the entry is "
                f"{state}; leaving it unchanged: {error}"
            )
            return
        entry.status = UrgentPurchaseStatus.REJECTED.value
        entry.reviewed_by_user_id = actor_id
        entry.reviewed_at = utc_now()
        entry.reviewer_notes = f"Item processing failed: {line_label}: {error}"
        db.commit()
        logger.error(
            f"Urgent purchase {entry_id} approval failed on {line_label}; no stock was applied "
            f"and the entry was rejected for manual reconciliation: {error}"
        )

    # ========== Queries ==========

    @staticmethod
    def get_entry(db: Session, entry_id: UUID) -> UrgentPurchase:
        entry = db.query(UrgentPurchase).filter(UrgentPurchase.id == entry_id).first()
        if not entry:
            raise NotFoundError("Urgent purchase", entry_id)
        return entry

    @staticmethod
    def list_entries(
        db: Session,
        status: Optional[str] = None,
        requester_id: Optional[UUID] = None,
    ) -> List[UrgentPurchase]:
        query = db.query(UrgentPurchase)
        if status:
            query = query.filter(UrgentPurchase.status == status)
        if requester_id:
            query = query.filter(UrgentPurchase.requested_by_user_id == requester_id)
        return query.order_by(UrgentPurchase.requested_at.desc()).all()

    @staticmethod
    def list_pending_for_reviewer(db: Session, reviewer_id: UUID) -> List[UrgentPurchase]:
        reviewer = user_service.get_active_user(db, reviewer_id)
        entries = db.query(UrgentPurchase).filter(
            UrgentPurchase.status == UrgentPurchaseStatus.PENDING_APPROVAL.value,
            UrgentPurchase.requested_by_user_id != reviewer.id,
        ).order_by(UrgentPurchase.submitted_at).all()
        return [entry for entry in entries if user_service.can_review_target(reviewer, entry.target_approval_role)]
