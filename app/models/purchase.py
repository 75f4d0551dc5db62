"""
Purchasing Models: Purchase Orders, PO lines and uploaded Invoices
"""
from sqlalchemy import Column, String, Integer, Date, ForeignKey, Text, Numeric, Uuid
from sqlalchemy.orm import relationship
import enum

from app.core import Base
from .base import UUIDMixin, TimestampMixin


class PurchaseOrderStatus(str, enum.Enum):
    PENDING = "pending"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PurchaseOrder(Base, UUIDMixin, TimestampMixin):
    """Purchase Order header"""
    __tablename__ = "purchase_order"
    
    po_number = Column(String(50), unique=True, nullable=False)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("supplier.id"))
    status = Column(String(30), nullable=False, default=PurchaseOrderStatus.PENDING.value)
    order_date = Column(Date)
    notes = Column(Text)
    
    # Relationships
    supplier = relationship("Supplier", back_populates="purchase_orders")
    items = relationship("PurchaseOrderItem", back_populates="purchase_order")
    invoices = relationship("Invoice", back_populates="purchase_order")


class PurchaseOrderItem(Base, UUIDMixin):
    """Purchase Order line"""
    __tablename__ = "purchase_order_item"
    
    purchase_order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_order.id"), nullable=False, index=True)
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False)
    quantity_ordered = Column(Integer, nullable=False)
    quantity_received = Column(Integer, nullable=False, default=0)
    unit_price = Column(Numeric(12, 2), default=0)
    
    # Relationships
    purchase_order = relationship("PurchaseOrder", back_populates="items")
    inventory_item = relationship("InventoryItem")


class Invoice(Base, UUIDMixin, TimestampMixin):
    """Uploaded supplier invoice file with its parsed header"""
    __tablename__ = "invoice"
    
    purchase_order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_order.id"), index=True)
    file_path = Column(String(500), nullable=False)  # Blob storage key
    file_name = Column(String(255))
    supplier_name = Column(String(200))
    invoice_date = Column(Date)
    total_amount = Column(Numeric(12, 2))
    uploaded_by = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"))
    
    # Relationships
    purchase_order = relationship("PurchaseOrder", back_populates="invoices")
