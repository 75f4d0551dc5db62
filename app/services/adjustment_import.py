"""
Adjustment Import - bulk decrease requests from a spreadsheet

Columns (header row, case-insensitive): SKU or Item Name, Quantity to
Decrease, Reason, and optionally Notes and Batch Number. Each valid row
becomes one pending request; invalid rows are reported and skipped.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID
from zipfile import BadZipFile
import csv
import io
import logging
import math

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from app.core.exceptions import ClinicStockError, ValidationError
from app.models import AdjustmentRequest, AdjustmentReason, InventoryItem, InventoryBatch, APPROVER_ROLES
from app.schemas.adjustment import AdjustmentRequestCreate
from .adjustment_service import AdjustmentService
from . import user_service

logger = logging.getLogger(__name__)

MAX_SHEET_BYTES = 5 * 1024 * 1024
MAX_ROWS = 1000

COLUMN_ALIASES = {
    "sku": "identifier",
    "item_code": "identifier",
    "item_name": "identifier",
    "quantity_to_decrease": "quantity",
    "quantity": "quantity",
    "reason": "reason",
    "notes": "notes",
    "batch_number": "batch_number",
    "batch": "batch_number",
}
REASONS = {reason.value.lower(): reason for reason in AdjustmentReason}


@dataclass(frozen=True)
class SheetRow:
    row_number: int  # as shown in the spreadsheet, header is row 1
    values: Dict[str, Any]


@dataclass(frozen=True)
class RowError:
    row_number: int
    message: str


@dataclass
class AdjustmentImportResult:
    created: List[AdjustmentRequest] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


def _column_key(header: Any) -> Optional[str]:
    if header is None:
        return None
    name = "_".join(str(header).strip().lower().split())
    return COLUMN_ALIASES.get(name)


def _collect(header: List[Any], records: List[List[Any]]) -> List[SheetRow]:
    keys = [_column_key(cell) for cell in header]
    if "identifier" not in keys or "quantity" not in keys:
        raise ValidationError("Sheet needs an 'SKU' or 'Item Name' column and a 'Quantity to Decrease' column")

    rows = []
    for offset, record in enumerate(records, start=2):
        values = {}
        for key, cell in zip(keys, record):
            # SKU wins over Item Name when both are filled
            if key and cell not in (None, "") and key not in values:
                values[key] = cell
        if values:
            rows.append(SheetRow(row_number=offset, values=values))
    if len(rows) > MAX_ROWS:
        raise ValidationError(f"Sheet has {len(rows)} rows; the limit is {MAX_ROWS}")
    return rows


def _read_xlsx(data: bytes) -> List[SheetRow]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError) as e:
        raise ValidationError(f"Unreadable spreadsheet: {e}")
    try:
        sheet = workbook.worksheets[0]
        records = [list(record) for record in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    if not records:
        raise ValidationError("Spreadsheet is empty")
    return _collect(records[0], records[1:])


def _read_csv(data: bytes) -> List[SheetRow]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")
    records = [record for record in csv.reader(io.StringIO(text))]
    if not records:
        raise ValidationError("CSV file is empty")
    return _collect(records[0], records[1:])


def read_adjustment_sheet(data: bytes, file_name: str) -> List[SheetRow]:
    """Rows of the first sheet of an .xlsx file, or of a .csv file"""
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > MAX_SHEET_BYTES:
        raise ValidationError(f"Uploaded file exceeds {MAX_SHEET_BYTES // (1024 * 1024)} MB")

    name = (file_name or "").lower()
    if name.endswith(".xlsx"):
        return _read_xlsx(data)
    if name.endswith(".csv"):
        return _read_csv(data)
    raise ValidationError(f"Unsupported sheet type for {file_name}; use .xlsx or .csv")


def _quantity(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value <= 0 or value != int(value):
            return None
        return int(value)
    text = str(value).strip()
    if text.isdigit() and len(text) <= 9 and int(text) > 0:
        return int(text)
    return None


def _find_item(catalog: List[InventoryItem], identifier: str) -> Optional[InventoryItem]:
    wanted = identifier.strip().lower()
    for item in catalog:
        if item.item_code and item.item_code.lower() == wanted:
            return item
    for item in catalog:
        if item.item_name.lower() == wanted:
            return item
    return None


def _build_request(
    db: Session,
    row: SheetRow,
    catalog: List[InventoryItem],
    file_name: str,
    approver_role_target: Optional[str],
) -> AdjustmentRequestCreate:
    values = row.values
    identifier = str(values.get("identifier", "")).strip()
    if not identifier:
        raise ValidationError("Missing SKU or Item Name")

    quantity = _quantity(values.get("quantity"))
    if quantity is None:
        raise ValidationError(f"Invalid or missing quantity for {identifier}; must be a positive whole number")

    reason = REASONS.get(str(values.get("reason", "")).strip().lower())
    if reason is None:
        raise ValidationError(
            f"Invalid or missing reason for {identifier}; valid reasons: "
            f"{', '.join(r.value for r in AdjustmentReason)}"
        )

    item = _find_item(catalog, identifier)
    if item is None:
        raise ValidationError(f"Item '{identifier}' not found in inventory")

    batch_id = None
    if item.is_batched:
        batch_number = str(values.get("batch_number", "")).strip()
        if not batch_number:
            raise ValidationError(f"Item '{item.item_name}' is batch tracked; fill in Batch Number")
        batch = db.query(InventoryBatch).filter(
            InventoryBatch.inventory_item_id == item.id,
            InventoryBatch.batch_number == batch_number,
        ).first()
        if batch is None:
            raise ValidationError(f"Batch {batch_number} not found for '{item.item_name}'")
        batch_id = batch.id

    notes = str(values.get("notes", "")).strip() or f"Bulk import from {file_name}, row {row.row_number}"
    return AdjustmentRequestCreate(
        inventory_item_id=item.id,
        inventory_batch_id=batch_id,
        quantity_to_decrease=quantity,
        reason=reason,
        notes=notes,
        approver_role_target=approver_role_target,
    )


def import_adjustment_requests(
    db: Session,
    data: bytes,
    file_name: str,
    requester_id: UUID,
    approver_role_target: Optional[str] = None,
) -> AdjustmentImportResult:
    """
    Submit one pending request per valid row.
    Every row is checked against the catalog and the current balance by the
    normal submit path; failing rows are collected with their row number.
    """
    requester = user_service.get_active_user(db, requester_id)
    if approver_role_target is not None and approver_role_target not in APPROVER_ROLES:
        raise ValidationError(f"Approver role must be one of {sorted(APPROVER_ROLES)}")
    rows = read_adjustment_sheet(data, file_name)
    if not rows:
        raise ValidationError(f"{file_name} has no data rows")

    catalog = db.query(InventoryItem).all()
    result = AdjustmentImportResult()
    for row in rows:
        try:
            payload = _build_request(db, row, catalog, file_name, approver_role_target)
            request, _ = AdjustmentService.submit_request(db, payload, requester.id)
        except ClinicStockError as e:
            db.rollback()
            result.errors.append(RowError(row_number=row.row_number, message=e.message))
            continue
        result.created.append(request)

    logger.info(
        f"Adjustment import {file_name} by {requester.username}: "
        f"{len(result.created)} requests created, {len(result.errors)} rows rejected"
    )
    return result
