"""
Stock Service - Business Logic for Inventory
"""
from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from typing import List, Optional, Union, Iterable
from uuid import UUID
from datetime import date, datetime, timedelta
from dateutil.relativedelta import relativedelta
import logging

from app.core import atomic
from app.core.exceptions import ValidationError, NotFoundError, InsufficientStock
from app.models import (
    InventoryItem, InventoryBatch, InventoryLog, ChangeType, ItemCategory,
    INCREASE_CHANGE_TYPES, DECREASE_CHANGE_TYPES,
    PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus,
)
from app.schemas.inventory import InventoryItemCreate
from .document_parser import format_date_string
from . import user_service

logger = logging.getLogger(__name__)

MAINTENANCE_UNITS = {"days", "weeks", "months", "years"}


def coerce_date(value: Union[date, str, None], field_name: str = "date") -> Optional[date]:
    """Accept a date, an ISO string or any document date format"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    normalized = format_date_string(str(value))
    if normalized is None:
        raise ValidationError(f"Invalid {field_name}: {value}")
    return date.fromisoformat(normalized)


def _coerce_change_type(change_type: Union[ChangeType, str]) -> ChangeType:
    try:
        return ChangeType(change_type)
    except ValueError:
        raise ValidationError(f"Unknown change type: {change_type}")


class StockService:
    """Stock/Inventory business logic"""

    # ========== Mutation Engine ==========

    @staticmethod
    def _lock_item(db: Session, item_id: UUID) -> InventoryItem:
        item = db.query(InventoryItem).filter(InventoryItem.id == item_id).with_for_update().first()
        if not item:
            raise NotFoundError("Inventory item", item_id)
        return item

    @staticmethod
    def _lock_batch(db: Session, batch_id: UUID) -> InventoryBatch:
        batch = db.query(InventoryBatch).filter(InventoryBatch.id == batch_id).with_for_update().first()
        if not batch:
            raise NotFoundError("Inventory batch", batch_id)
        return batch

    @staticmethod
    def _refresh_batched_total(db: Session, item: InventoryItem):
        db.flush()
        total = db.query(func.coalesce(func.sum(InventoryBatch.quantity_on_hand), 0)).filter(
            InventoryBatch.inventory_item_id == item.id
        ).scalar()
        item.quantity = int(total or 0)

    @staticmethod
    def _apply_adjustment(
        db: Session,
        item_id: UUID,
        quantity_delta: int,
        change_type: ChangeType,
        actor_id: Optional[UUID],
        notes: Optional[str],
        batch_id: Optional[UUID],
    ) -> int:
        item = StockService._lock_item(db, item_id)

        if item.is_batched:
            if batch_id is None:
                raise ValidationError(f"Item '{item.item_name}' is batch tracked; a batch is required")
            batch = StockService._lock_batch(db, batch_id)
            if batch.inventory_item_id != item.id:
                raise ValidationError(f"Batch {batch_id} does not belong to item '{item.item_name}'")

            new_balance = batch.quantity_on_hand + quantity_delta
            if new_balance < 0:
                raise InsufficientStock(batch.quantity_on_hand, -quantity_delta, str(batch.id))
            batch.quantity_on_hand = new_balance
            StockService._refresh_batched_total(db, item)
        else:
            if batch_id is not None:
                raise ValidationError(f"Item '{item.item_name}' is not batch tracked")
            new_balance = item.quantity + quantity_delta
            if new_balance < 0:
                raise InsufficientStock(item.quantity, -quantity_delta)
            item.quantity = new_balance

        db.add(InventoryLog(
            inventory_item_id=item.id,
            inventory_batch_id=batch_id,
            quantity_change=quantity_delta,
            quantity_after=new_balance,
            change_type=change_type.value,
            user_id=actor_id,
            notes=notes,
        ))
        db.flush()
        return new_balance

    @staticmethod
    def adjust_quantity(
        db: Session,
        item_id: UUID,
        quantity_delta: int,
        change_type: Union[ChangeType, str],
        actor_id: Optional[UUID],
        notes: Optional[str] = None,
        batch_id: Optional[UUID] = None,
        commit: bool = True,
    ) -> int:
        """
        Apply a signed quantity change to an item, or to one of its batches when
        the item is batch tracked, and append exactly one log entry.

        The item (and batch) rows are locked for the duration of the
        transaction. With commit=False the caller owns the transaction and the
        change is only flushed.

        Returns the new balance of the item or batch.
        """
        change_type = _coerce_change_type(change_type)
        if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
            raise ValidationError("Quantity change must be a non-zero whole number")
        if change_type in INCREASE_CHANGE_TYPES and quantity_delta < 0:
            raise ValidationError(f"Change type {change_type.value} cannot decrease stock")
        if change_type in DECREASE_CHANGE_TYPES and quantity_delta > 0:
            raise ValidationError(f"Change type {change_type.value} cannot increase stock")
        if actor_id is not None:
            user_service.get_active_user(db, actor_id)

        if commit:
            with atomic(db):
                new_balance = StockService._apply_adjustment(
                    db, item_id, quantity_delta, change_type, actor_id, notes, batch_id
                )
        else:
            new_balance = StockService._apply_adjustment(
                db, item_id, quantity_delta, change_type, actor_id, notes, batch_id
            )

        logger.info(
            f"Stock {change_type.value}: item={item_id} batch={batch_id or '-'} "
            f"delta={quantity_delta:+d} balance={new_balance}"
        )
        return new_balance

    @staticmethod
    def get_or_create_batch(
        db: Session,
        item_id: UUID,
        batch_number: Optional[str],
        expiry_date: Union[date, str, None] = None,
        purchase_price: Optional[float] = None,
        supplier_id: Optional[UUID] = None,
        purchase_order_item_id: Optional[UUID] = None,
    ) -> InventoryBatch:
        """Reuse the batch with this number for the item, or create an empty one"""
        batch_number = (batch_number or "").strip() or None
        expiry = coerce_date(expiry_date, "expiry date")

        if batch_number:
            batch = db.query(InventoryBatch).filter(
                InventoryBatch.inventory_item_id == item_id,
                InventoryBatch.batch_number == batch_number,
            ).with_for_update().first()
            if batch:
                if batch.expiry_date is None and expiry is not None:
                    batch.expiry_date = expiry
                elif expiry is not None and batch.expiry_date != expiry:
                    logger.warning(
                        f"Batch {batch_number} of item {item_id} received with expiry {expiry}, "
                        f"keeping recorded {batch.expiry_date}"
                    )
                return batch

        batch = InventoryBatch(
            inventory_item_id=item_id,
            batch_number=batch_number,
            expiry_date=expiry,
            quantity_on_hand=0,
            purchase_price_at_receipt=purchase_price or 0,
            received_date=date.today(),
            supplier_id=supplier_id,
            purchase_order_item_id=purchase_order_item_id,
        )
        db.add(batch)
        db.flush()
        logger.info(f"Created batch {batch_number or '(unnumbered)'} for item {item_id}")
        return batch

    @staticmethod
    def receive_batch(
        db: Session,
        po_item_id: UUID,
        quantity: int,
        receiver_id: Optional[UUID],
        batch_number: Optional[str] = None,
        expiry_date: Union[date, str, None] = None,
        purchase_price: Optional[float] = None,
    ) -> Optional[UUID]:
        """
        Receive goods against a purchase-order line.
        Batch upsert, stock-in, log entry and the line's received counter are
        one transaction. Returns the batch id for batch-tracked items.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Received quantity must be a positive whole number")
        if receiver_id is not None:
            user_service.get_active_user(db, receiver_id)

        with atomic(db):
            po_item = db.query(PurchaseOrderItem).filter(PurchaseOrderItem.id == po_item_id).with_for_update().first()
            if not po_item:
                raise NotFoundError("Purchase order item", po_item_id)
            po = po_item.purchase_order
            if po.status == PurchaseOrderStatus.CANCELLED.value:
                raise ValidationError(f"Purchase order {po.po_number} is cancelled")

            item = po_item.inventory_item
            notes = f"Received against PO {po.po_number}"
            batch_id = None
            if item.is_batched:
                batch = StockService.get_or_create_batch(
                    db,
                    item.id,
                    batch_number,
                    expiry_date=expiry_date,
                    purchase_price=purchase_price if purchase_price is not None else float(po_item.unit_price or 0),
                    supplier_id=po.supplier_id,
                    purchase_order_item_id=po_item.id,
                )
                batch_id = batch.id
                StockService.adjust_quantity(
                    db, item.id, quantity, ChangeType.BATCH_STOCK_IN, receiver_id,
                    notes=notes, batch_id=batch_id, commit=False,
                )
            else:
                StockService.adjust_quantity(
                    db, item.id, quantity, ChangeType.STOCK_IN, receiver_id,
                    notes=notes, commit=False,
                )

            po_item.quantity_received = (po_item.quantity_received or 0) + quantity
            if po_item.quantity_received > po_item.quantity_ordered:
                logger.warning(
                    f"PO {po.po_number} line {po_item.id} over-received: "
                    f"{po_item.quantity_received}/{po_item.quantity_ordered}"
                )
            db.flush()
            StockService._refresh_po_status(po)

        logger.info(f"Received {quantity} x '{item.item_name}' on PO {po.po_number} (batch={batch_id or '-'})")
        return batch_id

    @staticmethod
    def _refresh_po_status(po: PurchaseOrder):
        lines = po.items
        if lines and all((line.quantity_received or 0) >= line.quantity_ordered for line in lines):
            po.status = PurchaseOrderStatus.RECEIVED.value
        elif any((line.quantity_received or 0) > 0 for line in lines):
            po.status = PurchaseOrderStatus.PARTIALLY_RECEIVED.value

    # ========== Catalog ==========

    @staticmethod
    def create_item(db: Session, data: InventoryItemCreate, actor_id: Optional[UUID] = None) -> InventoryItem:
        """Create a catalog item; opening stock is logged as initial_stock"""
        if data.item_code and db.query(InventoryItem).filter(InventoryItem.item_code == data.item_code).first():
            raise ValidationError(f"Item code already exists: {data.item_code}")

        with atomic(db):
            item = InventoryItem(
                item_name=data.item_name,
                item_code=data.item_code,
                category=data.category.value,
                quantity=0,
                low_stock_threshold=data.low_stock_threshold,
                is_batched=data.is_batched,
                supplier_info=data.supplier_info,
            )
            db.add(item)
            db.flush()

            if data.initial_quantity:
                batch_id = None
                if item.is_batched:
                    batch = StockService.get_or_create_batch(
                        db, item.id, data.initial_batch_number, expiry_date=data.initial_expiry_date
                    )
                    batch_id = batch.id
                StockService.adjust_quantity(
                    db, item.id, data.initial_quantity, ChangeType.INITIAL_STOCK, actor_id,
                    notes="Opening stock", batch_id=batch_id, commit=False,
                )

        db.refresh(item)
        logger.info(f"Created inventory item '{item.item_name}' ({item.id})")
        return item

    @staticmethod
    def get_item(db: Session, item_id: UUID) -> InventoryItem:
        item = db.query(InventoryItem).filter(InventoryItem.id == item_id).first()
        if not item:
            raise NotFoundError("Inventory item", item_id)
        return item

    @staticmethod
    def list_items(
        db: Session,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[InventoryItem]:
        query = db.query(InventoryItem)
        if category:
            query = query.filter(InventoryItem.category == category)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(InventoryItem.item_name.ilike(term), InventoryItem.item_code.ilike(term)))
        return query.order_by(InventoryItem.item_name).all()

    @staticmethod
    def get_batches(db: Session, item_id: UUID, include_empty: bool = False) -> List[InventoryBatch]:
        query = db.query(InventoryBatch).filter(InventoryBatch.inventory_item_id == item_id)
        if not include_empty:
            query = query.filter(InventoryBatch.quantity_on_hand > 0)
        return query.order_by(InventoryBatch.expiry_date.is_(None), InventoryBatch.expiry_date).all()

    @staticmethod
    def get_low_stock_items(db: Session) -> List[InventoryItem]:
        """Items at or below their low-stock threshold"""
        return db.query(InventoryItem).filter(
            InventoryItem.quantity <= InventoryItem.low_stock_threshold
        ).order_by(InventoryItem.quantity, InventoryItem.item_name).all()

    @staticmethod
    def get_expiring_batches(db: Session, days: int = 30, as_of: Optional[date] = None) -> List[InventoryBatch]:
        """Batches with stock that are expired or expire within `days`"""
        cutoff = (as_of or date.today()) + timedelta(days=days)
        return db.query(InventoryBatch).filter(
            InventoryBatch.quantity_on_hand > 0,
            InventoryBatch.expiry_date.isnot(None),
            InventoryBatch.expiry_date <= cutoff,
        ).order_by(InventoryBatch.expiry_date).all()

    @staticmethod
    def get_logs(
        db: Session,
        item_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        change_types: Optional[Iterable[str]] = None,
        search: Optional[str] = None,
        limit: int = 200,
    ) -> List[InventoryLog]:
        """Recent log entries, newest first"""
        query = db.query(InventoryLog).join(InventoryItem, InventoryLog.inventory_item_id == InventoryItem.id)

        if item_id:
            query = query.filter(InventoryLog.inventory_item_id == item_id)
        if start:
            query = query.filter(InventoryLog.created_at >= start)
        if end:
            query = query.filter(InventoryLog.created_at < end)
        if change_types:
            query = query.filter(InventoryLog.change_type.in_(list(change_types)))
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                InventoryItem.item_name.ilike(term),
                InventoryItem.item_code.ilike(term),
                InventoryLog.notes.ilike(term),
                InventoryLog.change_type.ilike(term),
            ))

        return query.order_by(InventoryLog.created_at.desc()).limit(limit).all()

    # ========== Maintenance (Tools) ==========

    @staticmethod
    def set_maintenance_interval(
        db: Session,
        item_id: UUID,
        interval_value: int,
        interval_unit: str,
        actor_id: Optional[UUID] = None,
        from_date: Optional[date] = None,
    ) -> InventoryItem:
        if interval_unit not in MAINTENANCE_UNITS:
            raise ValidationError(f"Interval unit must be one of {sorted(MAINTENANCE_UNITS)}")
        if interval_value <= 0:
            raise ValidationError("Interval value must be positive")

        item = StockService.get_item(db, item_id)
        if item.category != ItemCategory.TOOLS.value:
            logger.warning(f"Maintenance interval set on non-tool item '{item.item_name}'")

        start = from_date or item.last_maintenance_date or date.today()
        item.maintenance_interval = {"interval_value": interval_value, "interval_unit": interval_unit}
        item.maintenance_interval_set_by = actor_id
        item.next_maintenance_due_date = start + relativedelta(**{interval_unit: interval_value})
        db.commit()
        db.refresh(item)
        return item

    @staticmethod
    def get_items_due_for_maintenance(db: Session, days_warning: int = 7, as_of: Optional[date] = None) -> List[InventoryItem]:
        cutoff = (as_of or date.today()) + timedelta(days=days_warning)
        return db.query(InventoryItem).filter(
            InventoryItem.next_maintenance_due_date.isnot(None),
            InventoryItem.next_maintenance_due_date <= cutoff,
        ).order_by(InventoryItem.next_maintenance_due_date).all()

    @staticmethod
    def mark_serviced(db: Session, item_id: UUID, serviced_on: Optional[date] = None) -> InventoryItem:
        """Record a completed service and roll the next due date forward"""
        item = StockService.get_item(db, item_id)
        serviced_on = serviced_on or date.today()
        item.last_maintenance_date = serviced_on

        interval = item.maintenance_interval or {}
        if interval.get("interval_unit") in MAINTENANCE_UNITS and interval.get("interval_value"):
            item.next_maintenance_due_date = serviced_on + relativedelta(
                **{interval["interval_unit"]: interval["interval_value"]}
            )
        db.commit()
        db.refresh(item)
        logger.info(f"'{item.item_name}' serviced on {serviced_on}, next due {item.next_maintenance_due_date}")
        return item
