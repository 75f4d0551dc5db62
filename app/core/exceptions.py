"""
Typed errors raised by the stock and approval services

Each error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to.
"""
from typing import Optional


class ClinicStockError(Exception):
    """Base exception for all service-level errors"""

    code: str = "CLINICSTOCK_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ClinicStockError):
    """Malformed or missing input, raised before any write"""

    code: str = "VALIDATION_ERROR"
    status_code: int = 422


class NotFoundError(ClinicStockError):
    code: str = "NOT_FOUND"
    status_code: int = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InsufficientStock(ClinicStockError):
    """A decrease would drive an item or batch balance below zero"""

    code: str = "INSUFFICIENT_STOCK"
    status_code: int = 409

    def __init__(self, available: int, requested: int, batch_id: Optional[str] = None):
        self.available = available
        self.requested = requested
        self.batch_id = batch_id
        target = f"batch {batch_id}" if batch_id else "item"
        super().__init__(
            f"Insufficient stock on {target}: available {available}, requested {requested}"
        )


class Unauthorized(ClinicStockError):
    """Actor is not allowed to perform this transition"""

    code: str = "UNAUTHORIZED"
    status_code: int = 403


class AlreadyResolved(ClinicStockError):
    """Review attempted on a request that is no longer open"""

    code: str = "ALREADY_RESOLVED"
    status_code: int = 409

    def __init__(self, entity: str, entity_id, status: str):
        self.status = status
        super().__init__(f"{entity} {entity_id} is already {status}")


class InvalidOrExpiredToken(ClinicStockError):
    code: str = "INVALID_OR_EXPIRED_TOKEN"
    status_code: int = 403

    def __init__(self, message: str = "Approval link is invalid or has expired"):
        super().__init__(message)


class ExternalServiceFailure(ClinicStockError):
    """OCR, AI extraction or storage collaborator failed or timed out"""

    code: str = "EXTERNAL_SERVICE_FAILURE"
    status_code: int = 502

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class PartialMutationFailure(ClinicStockError):
    """
    A line item failed while applying an approved multi-line request.
    The owning request has been moved to rejected and needs manual follow-up.
    """

    code: str = "PARTIAL_MUTATION_FAILURE"
    status_code: int = 500

    def __init__(self, entry_id, failed_line: int, reason: str):
        self.entry_id = entry_id
        self.failed_line = failed_line
        self.reason = reason
        super().__init__(
            f"Urgent purchase {entry_id} line {failed_line} failed: {reason}"
        )
