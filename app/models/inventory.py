"""
Inventory Models: Items, Batches and the append-only Inventory Log
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, Date, DateTime, ForeignKey, Text, Numeric, JSON,
    CheckConstraint, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from datetime import date
import enum

from app.core import Base
from .base import UUIDMixin, TimestampMixin, utc_now


class ItemCategory(str, enum.Enum):
    MEDICINES = "Medicines"
    TOOLS = "Tools"
    CONSUMABLES = "Consumables"


class ChangeType(str, enum.Enum):
    ADD = "add"
    USE = "use"
    INITIAL_STOCK = "initial_stock"
    ADJUSTMENT = "adjustment"
    DISPOSE_EXPIRED = "dispose_expired"
    DISPOSE_OTHER = "dispose_other"
    STOCK_IN = "STOCK_IN"
    BATCH_STOCK_IN = "BATCH_STOCK_IN"
    BATCH_STOCK_OUT = "BATCH_STOCK_OUT"
    BATCH_ADJUSTMENT = "BATCH_ADJUSTMENT"
    EXPIRED = "EXPIRED"


INCREASE_CHANGE_TYPES = {
    ChangeType.ADD, ChangeType.INITIAL_STOCK, ChangeType.STOCK_IN, ChangeType.BATCH_STOCK_IN,
}
DECREASE_CHANGE_TYPES = {
    ChangeType.USE, ChangeType.DISPOSE_EXPIRED, ChangeType.DISPOSE_OTHER,
    ChangeType.BATCH_STOCK_OUT, ChangeType.EXPIRED,
}


class InventoryItem(Base, UUIDMixin, TimestampMixin):
    """Catalog entry"""
    __tablename__ = "inventory_item"
    
    item_name = Column(String(200), nullable=False, index=True)
    item_code = Column(String(50), unique=True)
    category = Column(String(30), nullable=False, default=ItemCategory.CONSUMABLES.value)  # Medicines, Tools, Consumables
    
    # Scalar balance; for batched items this mirrors the sum of batch balances
    quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=0)
    is_batched = Column(Boolean, nullable=False, default=False)
    supplier_info = Column(Text)
    
    # Maintenance (Tools): {"interval_value": 6, "interval_unit": "months"}
    maintenance_interval = Column(JSON)
    maintenance_interval_set_by = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"))
    next_maintenance_due_date = Column(Date)
    last_maintenance_date = Column(Date)
    
    # Relationships
    batches = relationship("InventoryBatch", back_populates="item", order_by="InventoryBatch.expiry_date")
    logs = relationship("InventoryLog", back_populates="item")
    
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_item_quantity_non_negative"),
    )


class InventoryBatch(Base, UUIDMixin, TimestampMixin):
    """Receipt-tracked sub-quantity of an item"""
    __tablename__ = "inventory_batch"
    
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False, index=True)
    batch_number = Column(String(100))
    expiry_date = Column(Date)
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    purchase_price_at_receipt = Column(Numeric(12, 2), default=0)
    received_date = Column(Date, default=date.today)
    
    # Source
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("supplier.id"))
    purchase_order_item_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_order_item.id"))
    
    # Relationships
    item = relationship("InventoryItem", back_populates="batches")
    
    __table_args__ = (
        UniqueConstraint("inventory_item_id", "batch_number", name="uq_inventory_batch_item_number"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_inventory_batch_quantity_non_negative"),
    )


class InventoryLog(Base, UUIDMixin):
    """Append-only record of every quantity change"""
    __tablename__ = "inventory_log"
    
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False, index=True)
    inventory_batch_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_batch.id"), index=True)
    
    quantity_change = Column(Integer, nullable=False)  # Positive or negative
    quantity_after = Column(Integer, nullable=False)  # Balance of the item or batch after the change
    change_type = Column(String(30), nullable=False)  # see ChangeType
    
    # Metadata
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    
    # Relationships
    item = relationship("InventoryItem", back_populates="logs")
    batch = relationship("InventoryBatch")
