"""
Urgent Purchase Models - stock received outside the purchase-order path
"""
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Text, Float, Uuid
from sqlalchemy.orm import relationship
import enum

from app.core import Base
from .base import UUIDMixin, TimestampMixin, utc_now


class UrgentPurchaseStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class UrgentPurchase(Base, UUIDMixin, TimestampMixin):
    """Urgent purchase header, usually created from a photographed delivery slip"""
    __tablename__ = "urgent_purchase"
    
    # Slip
    slip_image_path = Column(String(500))
    slip_filename = Column(String(255))
    invoice_delivery_date = Column(Date)
    confidence_score = Column(Float)  # 0..1 from document matching
    notes = Column(Text)
    
    # Workflow
    status = Column(String(30), nullable=False, default=UrgentPurchaseStatus.DRAFT.value, index=True)
    target_approval_role = Column(String(20))
    requested_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    submitted_at = Column(DateTime(timezone=True))
    
    # Review
    reviewed_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"))
    reviewed_at = Column(DateTime(timezone=True))
    reviewer_notes = Column(Text)
    
    # Relationships
    items = relationship(
        "UrgentPurchaseItem",
        back_populates="urgent_purchase",
        cascade="all, delete-orphan",
        order_by="UrgentPurchaseItem.line_number",
    )


class UrgentPurchaseItem(Base, UUIDMixin):
    """Urgent purchase line"""
    __tablename__ = "urgent_purchase_item"
    
    urgent_purchase_id = Column(Uuid(as_uuid=True), ForeignKey("urgent_purchase.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False)
    matched_item_name = Column(String(200), nullable=False)  # Kept as submitted, even if the catalog changes
    quantity = Column(Integer, nullable=False)
    batch_number = Column(String(100))
    expiry_date = Column(Date)
    slip_text = Column(Text)  # Original slip line
    
    # Relationships
    urgent_purchase = relationship("UrgentPurchase", back_populates="items")
    inventory_item = relationship("InventoryItem")
