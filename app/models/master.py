"""
Master Tables: AppUser, Supplier
"""
from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
import enum

from app.core import Base
from .base import UUIDMixin, TimestampMixin


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    OWNER = "owner"
    DOCTOR = "doctor"
    STAFF = "staff"


# Roles allowed to review adjustment requests and urgent purchases
APPROVER_ROLES = {UserRole.ADMIN.value, UserRole.OWNER.value, UserRole.DOCTOR.value}


class AppUser(Base, UUIDMixin, TimestampMixin):
    """Application User"""
    __tablename__ = "app_user"
    
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(200))
    full_name = Column(String(200))
    role = Column(String(20), default=UserRole.STAFF.value, nullable=False)  # admin, owner, doctor, staff
    is_active = Column(Boolean, default=True)
    
    @property
    def is_approver(self) -> bool:
        return self.role in APPROVER_ROLES


class Supplier(Base, UUIDMixin, TimestampMixin):
    """Supplier / Vendor"""
    __tablename__ = "supplier"
    
    name = Column(String(200), nullable=False)
    contact_email = Column(String(200))
    
    # Relationships
    purchase_orders = relationship("PurchaseOrder", back_populates="supplier")
