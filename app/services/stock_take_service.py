"""
Stock Take Service - record physical counts and their variance
"""
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import datetime
import logging

from app.core.exceptions import ValidationError, NotFoundError
from app.models import StockTake, AdjustmentRequest, AdjustmentReason
from app.schemas.adjustment import AdjustmentRequestCreate
from .stock_service import StockService
from .adjustment_service import AdjustmentService
from . import user_service

logger = logging.getLogger(__name__)


class StockTakeService:
    """Counting is recorded here; correcting stock always goes through an adjustment request"""

    @staticmethod
    def record_stock_take(
        db: Session,
        item_id: UUID,
        system_quantity_at_count: int,
        physical_count: int,
        counter_id: UUID,
        notes: Optional[str] = None,
    ) -> StockTake:
        for name, value in (("System quantity", system_quantity_at_count), ("Physical count", physical_count)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative whole number")

        counter = user_service.get_active_user(db, counter_id)
        item = StockService.get_item(db, item_id)

        stock_take = StockTake(
            inventory_item_id=item.id,
            system_quantity_at_count=system_quantity_at_count,
            physical_counted_quantity=physical_count,
            variance=physical_count - system_quantity_at_count,
            counted_by_user_id=counter.id,
            notes=notes,
            is_variance_resolved=False,
        )
        db.add(stock_take)
        db.commit()
        db.refresh(stock_take)

        if stock_take.variance:
            logger.warning(
                f"Stock take variance on '{item.item_name}': system={system_quantity_at_count} "
                f"counted={physical_count} variance={stock_take.variance:+d}"
            )
        else:
            logger.info(f"Stock take on '{item.item_name}' matches system quantity {system_quantity_at_count}")
        return stock_take

    @staticmethod
    def get_stock_take(db: Session, stock_take_id: UUID) -> StockTake:
        stock_take = db.query(StockTake).filter(StockTake.id == stock_take_id).first()
        if not stock_take:
            raise NotFoundError("Stock take", stock_take_id)
        return stock_take

    @staticmethod
    def list_stock_takes(
        db: Session,
        item_id: Optional[UUID] = None,
        unresolved_only: bool = False,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[StockTake]:
        query = db.query(StockTake)
        if item_id:
            query = query.filter(StockTake.inventory_item_id == item_id)
        if unresolved_only:
            query = query.filter(StockTake.variance != 0, StockTake.is_variance_resolved == False)  # noqa: E712
        if start:
            query = query.filter(StockTake.counted_at >= start)
        if end:
            query = query.filter(StockTake.counted_at < end)
        return query.order_by(StockTake.counted_at.desc()).all()

    @staticmethod
    def update_stock_take(
        db: Session,
        stock_take_id: UUID,
        notes: Optional[str] = None,
        is_variance_resolved: Optional[bool] = None,
    ) -> StockTake:
        """Only notes and the resolved flag can change after recording"""
        stock_take = StockTakeService.get_stock_take(db, stock_take_id)
        if notes is not None:
            stock_take.notes = notes
        if is_variance_resolved is not None:
            stock_take.is_variance_resolved = is_variance_resolved
        db.commit()
        db.refresh(stock_take)
        return stock_take

    @staticmethod
    def create_variance_adjustment(
        db: Session,
        stock_take_id: UUID,
        requester_id: UUID,
        batch_id: Optional[UUID] = None,
        approver_role_target: Optional[str] = None,
    ) -> Tuple[AdjustmentRequest, Optional[str]]:
        """Open an adjustment request for a counted shortfall; it still needs a reviewer"""
        stock_take = StockTakeService.get_stock_take(db, stock_take_id)
        if stock_take.is_variance_resolved:
            raise ValidationError(f"Stock take {stock_take_id} variance is already resolved")
        if stock_take.variance >= 0:
            raise ValidationError("Only a shortfall (negative variance) can be corrected by an adjustment request")

        data = AdjustmentRequestCreate(
            inventory_item_id=stock_take.inventory_item_id,
            inventory_batch_id=batch_id,
            quantity_to_decrease=-stock_take.variance,
            reason=AdjustmentReason.STOCK_COUNT_CORRECTION,
            notes=(
                f"Stock take {stock_take.id}: counted {stock_take.physical_counted_quantity}, "
                f"system {stock_take.system_quantity_at_count}"
            ),
            approver_role_target=approver_role_target,
        )
        return AdjustmentService.submit_request(db, data, requester_id)
