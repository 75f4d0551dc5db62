from .base import TimestampMixin, UUIDMixin
from .master import AppUser, Supplier, UserRole, APPROVER_ROLES
from .inventory import (
    InventoryItem, InventoryBatch, InventoryLog, ItemCategory, ChangeType,
    INCREASE_CHANGE_TYPES, DECREASE_CHANGE_TYPES,
)
from .purchase import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, Invoice
from .adjustment import AdjustmentRequest, AdjustmentReason, AdjustmentStatus
from .urgent_purchase import UrgentPurchase, UrgentPurchaseItem, UrgentPurchaseStatus
from .stock_take import StockTake

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Master
    "AppUser", "Supplier", "UserRole", "APPROVER_ROLES",
    # Inventory
    "InventoryItem", "InventoryBatch", "InventoryLog", "ItemCategory", "ChangeType",
    "INCREASE_CHANGE_TYPES", "DECREASE_CHANGE_TYPES",
    # Purchasing
    "PurchaseOrder", "PurchaseOrderItem", "PurchaseOrderStatus", "Invoice",
    # Adjustment
    "AdjustmentRequest", "AdjustmentReason", "AdjustmentStatus",
    # Urgent Purchase
    "UrgentPurchase", "UrgentPurchaseItem", "UrgentPurchaseStatus",
    # Stock Take
    "StockTake",
]
