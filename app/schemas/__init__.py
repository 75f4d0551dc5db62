# Pydantic Schemas Package
from .inventory import (
    InventoryItemCreate, AdjustQuantityRequest, MaintenanceIntervalRequest,
    InventoryItemResponse, InventoryBatchResponse, InventoryLogResponse, MarkServicedRequest,
)
from .adjustment import AdjustmentRequestCreate, ReviewRequest, TokenReviewRequest, AdjustmentRequestResponse, AdjustmentSubmitResponse, ImportRowError, AdjustmentImportResponse
from .urgent_purchase import UrgentPurchaseItemIn, UrgentPurchaseCreate, UrgentPurchaseUpdate, UrgentPurchaseResponse
from .stock_take import StockTakeCreate, StockTakeUpdate, StockTakeResponse, VarianceAdjustmentRequest
from .receiving import ReceiveLineRequest
from .document import ParseDocumentRequest, MatchRequest, ParsedDocumentSchema, MatchResultSchema, DocumentImportResponse, InvoiceSaveRequest, InvoiceResponse

__all__ = [
    "InventoryItemCreate", "AdjustQuantityRequest", "MaintenanceIntervalRequest",
    "InventoryItemResponse", "InventoryBatchResponse", "InventoryLogResponse", "MarkServicedRequest",
    "AdjustmentRequestCreate", "ReviewRequest", "TokenReviewRequest", "AdjustmentRequestResponse", "AdjustmentSubmitResponse",
    "ImportRowError", "AdjustmentImportResponse",
    "UrgentPurchaseItemIn", "UrgentPurchaseCreate", "UrgentPurchaseUpdate", "UrgentPurchaseResponse",
    "StockTakeCreate", "StockTakeUpdate", "StockTakeResponse", "VarianceAdjustmentRequest",
    "ReceiveLineRequest",
    "ParseDocumentRequest", "MatchRequest", "ParsedDocumentSchema", "MatchResultSchema", "DocumentImportResponse", "InvoiceSaveRequest", "InvoiceResponse",
]
