# Services Package
from .stock_service import StockService
from .adjustment_service import AdjustmentService
from .urgent_purchase_service import UrgentPurchaseService
from .stock_take_service import StockTakeService
from .catalog_matcher import CatalogMatcher
from . import document_parser
from . import document_import_service
from . import notification_service
from . import user_service
from . import adjustment_import

__all__ = [
    "StockService",
    "AdjustmentService",
    "UrgentPurchaseService",
    "StockTakeService",
    "CatalogMatcher",
    "document_parser",
    "document_import_service",
    "notification_service",
    "user_service",
    "adjustment_import",
]
