"""
Adjustment Request Model - decrease-stock approval workflow
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, JSON, Uuid
from sqlalchemy.orm import relationship
import enum

from app.core import Base
from .base import UUIDMixin, TimestampMixin, utc_now


class AdjustmentReason(str, enum.Enum):
    EXPIRED = "Expired"
    DAMAGED = "Damaged"
    LOST = "Lost"
    STOCK_COUNT_CORRECTION = "Stock Count Correction"
    USED = "Used"
    OTHER = "Other"


class AdjustmentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AdjustmentRequest(Base, UUIDMixin, TimestampMixin):
    """Request to decrease stock of an item or batch"""
    __tablename__ = "inventory_adjustment_request"
    
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False, index=True)
    inventory_batch_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_batch.id"))
    quantity_to_decrease = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)  # see AdjustmentReason
    notes = Column(Text, nullable=False)
    photo_path = Column(String(500))  # Blob storage key of proof photo
    
    # Request
    requested_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    status = Column(String(20), nullable=False, default=AdjustmentStatus.PENDING.value, index=True)
    
    # Routing
    approver_role_target = Column(String(20))  # admin, owner, doctor or null = any approver
    custom_approver_emails = Column(JSON)  # ["a@clinic.com", ...]
    
    # Link approval; only the SHA-256 of the token is stored
    approval_token_hash = Column(String(64))
    approval_token_expires_at = Column(DateTime(timezone=True))
    
    # Review
    reviewed_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"))
    reviewed_at = Column(DateTime(timezone=True))
    reviewer_notes = Column(Text)
    
    # Relationships
    item = relationship("InventoryItem")
    batch = relationship("InventoryBatch")
    requester = relationship("AppUser", foreign_keys=[requested_by_user_id])
    reviewer = relationship("AppUser", foreign_keys=[reviewed_by_user_id])
