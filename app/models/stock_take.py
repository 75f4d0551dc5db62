"""
Stock Take Model - physical count versus system quantity
"""
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from app.core import Base
from .base import UUIDMixin, TimestampMixin, utc_now


class StockTake(Base, UUIDMixin, TimestampMixin):
    """Recorded stock count; only notes and the resolved flag change afterwards"""
    __tablename__ = "stock_take"
    
    inventory_item_id = Column(Uuid(as_uuid=True), ForeignKey("inventory_item.id"), nullable=False, index=True)
    system_quantity_at_count = Column(Integer, nullable=False)
    physical_counted_quantity = Column(Integer, nullable=False)
    variance = Column(Integer, nullable=False)  # physical - system
    
    counted_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    counted_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    notes = Column(Text)
    is_variance_resolved = Column(Boolean, nullable=False, default=False)
    
    # Relationships
    item = relationship("InventoryItem")
