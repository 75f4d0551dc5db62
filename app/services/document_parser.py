"""
Document Parser - Structure OCR text and AI responses from delivery slips and invoices

Parsing is heuristic and line oriented. Malformed input never raises: it just
produces fewer items (or none), so callers can fall back to manual entry.
The resulting ParsedDocument is immutable; review edits go through
apply_match / edit_line / remove_line, which return new documents.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID
from dateutil import parser as date_parser
import json
import logging
import math
import re

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 5
NO_MATCH_CONFIDENCE = 0.1

# Quantity: a standalone integer, not part of a decimal, a date or a unit like "500mg"
QUANTITY_PATTERN = re.compile(r"^(.*?)\s+((?<![\d/.\-])\d+(?![\w/.\-%]))\s*(.*)$")
BATCH_KEYWORD = re.compile(r"(?<!\w)(?:batch(?![a-z])|lot(?![a-z])|b\.no|b:|l:)", re.IGNORECASE)
BATCH_PATTERN = re.compile(BATCH_KEYWORD.pattern + r"\s*(?:(?:no|number)\b\.?)?\s*[:#]?\s*([a-z0-9][a-z0-9\-/]*)", re.IGNORECASE)
EXPIRY_KEYWORD = re.compile(r"(?<!\w)(?:expiry(?![a-z])|exp(?![a-z])\.?|use by(?![a-z])|e:)", re.IGNORECASE)
EXPIRY_PATTERN = re.compile(EXPIRY_KEYWORD.pattern + r"\s*(?:date\b)?\s*[:.]?\s*([\d\w\s.,/\-]+)", re.IGNORECASE)

DATE_KEYWORD_PATTERN = re.compile(
    r"(?<!\w)(?:invoice date|delivery date|date)\s*[:\-]?\s*([0-9]{1,4}[./\-\s][0-9a-z]{1,9}[./\-\s][0-9]{2,4}|[a-z]{3,9}\.?\s+\d{1,2},?\s+\d{4})",
    re.IGNORECASE,
)
GENERIC_DATE_PATTERN = re.compile(r"(?<!\d)(\d{1,4}[./\-]\d{1,2}[./\-]\d{2,4})(?!\d)")
MONTH_NAME_DATE_PATTERNS = [
    re.compile(r"\b(\d{1,2}(?:st|nd|rd|th)?[\s\-]+[a-z]{3,9}\.?,?[\s\-]+\d{2,4})\b", re.IGNORECASE),
    re.compile(r"\b([a-z]{3,9}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})\b", re.IGNORECASE),
]

SUPPLIER_PATTERNS = [
    re.compile(r"\b(?:supplier|vendor)(?:\s+name)?\s*[:\-]?\s*(.+)$", re.IGNORECASE),
    re.compile(r"\binvoice from\s*[:\-]?\s*(.+)$", re.IGNORECASE),
    re.compile(r"\bsold by\s*[:\-]?\s*(.+)$", re.IGNORECASE),
    re.compile(r"\bfrom:\s*(.+)$", re.IGNORECASE),
]
TOTAL_KEYWORD = re.compile(r"\b(?:grand total|amount due|total amount|balance due|total)\b", re.IGNORECASE)
NUMBER_PATTERN = re.compile(r"(?<![\w.])\d+(?:,\d{3})*(?:\.\d+)?(?![\w])")
COMPANY_HINT = re.compile(
    r"\b(?:ltd|limited|inc|llc|llp|corp|co|company|pharma|pharmacy|medical|supplies|distributors?|pvt|gmbh|plc|trading)\b\.?",
    re.IGNORECASE,
)
# Lines that describe the document rather than a delivered item
HEADER_WORDS = re.compile(
    r"\b(?:invoice|subtotal|sub total|total|tax|vat|date|page|tel|phone|fax|email|receipt|"
    r"supplier|vendor|sold by|bill to|ship to|amount due|balance due|thank you)\b|\bfrom:",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedLineItem:
    """One candidate line, optionally enriched with a catalog match"""
    description: str
    quantity: int
    unit_price: Optional[float] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[str] = None  # YYYY-MM-DD
    raw_text: str = ""
    matched_item_id: Optional[UUID] = None
    matched_item_name: Optional[str] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class ParsedDocument:
    """Header fields and candidate lines extracted from one slip or invoice"""
    raw_text: str = ""
    document_date: Optional[str] = None  # YYYY-MM-DD
    supplier_name: Optional[str] = None
    total_amount: Optional[float] = None
    items: Tuple[ParsedLineItem, ...] = field(default_factory=tuple)
    confidence: Optional[float] = None


# ========== Dates ==========

def _build_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _two_digit_year(year: int) -> int:
    if year >= 100:
        return year
    return (date.today().year // 100) * 100 + year


def _parse_month_name_date(text: str) -> Optional[str]:
    # Month names need a year or day figure next to them
    if not re.search(r"\d", text):
        return None
    cleaned = re.sub(r"[.\-/]+", " ", text)
    try:
        parsed = date_parser.parse(cleaned, default=datetime(date.today().year, 1, 1))
    except (ValueError, OverflowError):
        return None
    return parsed.date().isoformat()


def format_date_string(value: Optional[str]) -> Optional[str]:
    """
    Normalize a date found on a document to YYYY-MM-DD.

    Accepted forms, tried in order: DD-MM-YYYY, YYYY-MM-DD, MM-YYYY, MM-YY
    (both meaning the first of that month), DD-MM-YY, then month names
    ("15 March 2024", "March 15, 2024", "Mar 2025"). Dots, slashes and spaces
    count as dashes. Anything else returns None.
    """
    if value is None:
        return None
    text = str(value).strip().strip(".,;")
    if not text:
        return None

    normalized = re.sub(r"[./\s]+", "-", text)

    match = re.fullmatch(r"(\d{1,2})-(\d{1,2})-(\d{4})", normalized)
    if match:
        return _build_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))

    match = re.fullmatch(r"(\d{4})-(\d{1,2})-(\d{1,2})", normalized)
    if match:
        return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = re.fullmatch(r"(\d{1,2})-(\d{4})", normalized)
    if match:
        return _build_date(int(match.group(2)), int(match.group(1)), 1)

    match = re.fullmatch(r"(\d{1,2})-(\d{2})", normalized)
    if match:
        return _build_date(_two_digit_year(int(match.group(2))), int(match.group(1)), 1)

    match = re.fullmatch(r"(\d{1,2})-(\d{1,2})-(\d{2})", normalized)
    if match:
        return _build_date(_two_digit_year(int(match.group(3))), int(match.group(2)), int(match.group(1)))

    if re.search(r"[a-z]", text, re.IGNORECASE):
        return _parse_month_name_date(text)
    return None


def _extract_document_date(lines: List[str]) -> Optional[str]:
    """Keyword line first, then any numeric date, then month-name dates"""
    # Expiry dates on item lines are not the document date
    candidates = [line for line in lines if not EXPIRY_KEYWORD.search(line)]

    for line in candidates:
        match = DATE_KEYWORD_PATTERN.search(line)
        if match:
            parsed = format_date_string(match.group(1))
            if parsed:
                return parsed

    for line in candidates:
        for match in GENERIC_DATE_PATTERN.finditer(line):
            parsed = format_date_string(match.group(1))
            if parsed:
                return parsed

    for pattern in MONTH_NAME_DATE_PATTERNS:
        for line in candidates:
            for match in pattern.finditer(line):
                parsed = format_date_string(match.group(1))
                if parsed:
                    return parsed
    return None


# ========== Line helpers ==========

def _split_lines(raw_text: str) -> List[str]:
    if not raw_text:
        return []
    lines = [line.strip() for line in raw_text.splitlines()]
    return [line for line in lines if len(line) > MIN_LINE_LENGTH]


def _find_batch(text: str) -> Tuple[Optional[str], str]:
    """Return (batch number, text with the batch segment removed)"""
    match = BATCH_PATTERN.search(text)
    if not match:
        return None, text
    batch = match.group(1).strip("-/")
    remaining = (text[:match.start()] + " " + text[match.end():]).strip()
    return (batch or None), remaining


def _find_expiry(text: str) -> Tuple[Optional[str], str]:
    """Return (normalized expiry, text with the expiry segment removed)"""
    match = EXPIRY_PATTERN.search(text)
    if not match:
        return None, text

    raw = match.group(1)
    batch_start = BATCH_KEYWORD.search(raw)
    if batch_start:
        raw = raw[:batch_start.start()]

    # Shortest run of tokens that reads as a date, so a following quantity survives
    tokens = list(re.finditer(r"\S+", raw))
    for count in range(1, min(len(tokens), 4) + 1):
        end = tokens[count - 1].end()
        expiry = format_date_string(raw[:end])
        if expiry:
            consumed = match.start(1) + end
            return expiry, (text[:match.start()] + " " + text[consumed:]).strip()

    # Keyword without a readable date: drop the keyword only
    return None, (text[:match.start()] + " " + text[match.start(1):]).strip()


def _is_header_line(line: str) -> bool:
    _, without_expiry = _find_expiry(line)
    return bool(HEADER_WORDS.search(without_expiry))


def _clean_description(text: str) -> str:
    text = re.sub(r"\s+", " ", text)
    return text.strip(" -:,;|*#")


def _is_valid_description(description: str) -> bool:
    if len(description) <= 2:
        return False
    return not description.replace(" ", "").isdigit()


def _to_number(token: str) -> Optional[float]:
    try:
        number = float(token.replace(",", ""))
    except ValueError:
        return None
    # Digit runs too long for a float come back as inf
    return number if math.isfinite(number) else None


def _finite_float(value: Union[int, float]) -> Optional[float]:
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _whole_number(number: Optional[float]) -> Optional[int]:
    """Positive integral quantity, or None"""
    if number is None or not math.isfinite(number) or number <= 0 or number != int(number):
        return None
    return int(number)


# ========== Delivery slips ==========

def _parse_slip_line(line: str) -> Optional[ParsedLineItem]:
    # Batch and expiry may sit before or after the quantity; take them out first
    expiry, working = _find_expiry(line)
    batch, working = _find_batch(working)

    match = QUANTITY_PATTERN.match(working)
    if not match:
        return None

    description, quantity_text, _ = match.groups()
    quantity = _whole_number(_to_number(quantity_text))
    description = _clean_description(description)
    if quantity is None or not _is_valid_description(description):
        return None

    return ParsedLineItem(
        description=description,
        quantity=quantity,
        batch_number=batch,
        expiry_date=expiry,
        raw_text=line,
    )


def parse_slip_text(raw_text: str) -> ParsedDocument:
    """Structure OCR text from a delivery slip"""
    lines = _split_lines(raw_text)
    items = []
    for line in lines:
        if _is_header_line(line):
            continue
        item = _parse_slip_line(line)
        if item:
            items.append(item)

    document = ParsedDocument(
        raw_text=raw_text or "",
        document_date=_extract_document_date(lines),
        items=tuple(items),
    )
    logger.debug(f"Slip parsed: {len(lines)} lines -> {len(items)} items")
    return document


# ========== Invoices ==========

def _extract_supplier(lines: List[str]) -> Optional[str]:
    for line in lines:
        for pattern in SUPPLIER_PATTERNS:
            match = pattern.search(line)
            if match:
                name = _clean_description(match.group(1))
                if len(name) > 2:
                    return name

    # Letterhead: a company-looking line at the top of the page
    for line in lines[:3]:
        if HEADER_WORDS.search(line) or NUMBER_PATTERN.search(line):
            continue
        if COMPANY_HINT.search(line) or (line.isupper() and re.search(r"[A-Z]{3,}", line)):
            return _clean_description(line)
    return None


def _extract_total(lines: List[str]) -> Optional[float]:
    """The largest figure on any total-like line"""
    amounts = []
    for line in lines:
        if not TOTAL_KEYWORD.search(line):
            continue
        for token in NUMBER_PATTERN.findall(line):
            value = _to_number(token)
            if value is not None:
                amounts.append(value)
    return max(amounts) if amounts else None


def _parse_invoice_line(line: str) -> Optional[ParsedLineItem]:
    expiry, working = _find_expiry(line)
    batch, working = _find_batch(working)

    numbers = list(NUMBER_PATTERN.finditer(working))
    if len(numbers) < 2:
        return None

    # The last two figures are quantity and unit price
    quantity_match, price_match = numbers[-2], numbers[-1]
    quantity = _whole_number(_to_number(quantity_match.group(0)))
    unit_price = _to_number(price_match.group(0))
    if quantity is None:
        return None

    description = _clean_description(working[:quantity_match.start()])
    if not _is_valid_description(description):
        return None

    return ParsedLineItem(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        batch_number=batch,
        expiry_date=expiry,
        raw_text=line,
    )


def parse_invoice_text(raw_text: str) -> ParsedDocument:
    """Structure OCR or PDF text from a supplier invoice"""
    lines = _split_lines(raw_text)
    items = []
    for line in lines:
        if _is_header_line(line):
            continue
        item = _parse_invoice_line(line)
        if item:
            items.append(item)

    return ParsedDocument(
        raw_text=raw_text or "",
        document_date=_extract_document_date(lines),
        supplier_name=_extract_supplier(lines),
        total_amount=_extract_total(lines),
        items=tuple(items),
    )


# ========== AI structured responses ==========

def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _coerce_quantity(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _whole_number(_finite_float(value))
    if isinstance(value, str):
        return _whole_number(_to_number(value.strip()))
    return None


def _coerce_price(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return _finite_float(value)
    if isinstance(value, str):
        return _to_number(re.sub(r"[^\d.,]", "", value))
    return None


def parse_ai_response(payload: Union[str, Dict[str, Any]]) -> ParsedDocument:
    """
    Validate a pre-structured extraction response.
    Expected shape: {supplier, date, total, items: [{description, quantity,
    unit_price, batch_number, expiry_date}]}. Invalid items are dropped.
    """
    raw_text = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    if isinstance(payload, str):
        try:
            payload = json.loads(_strip_code_fence(payload))
        except ValueError as e:
            logger.warning(f"AI response is not valid JSON: {e}")
            return ParsedDocument(raw_text=raw_text)
    if not isinstance(payload, dict):
        logger.warning("AI response is not a JSON object")
        return ParsedDocument(raw_text=raw_text)

    items = []
    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raw_items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        description = _first(raw, "description", "name", "item_name")
        quantity = _coerce_quantity(_first(raw, "quantity", "qty"))
        if not isinstance(description, str) or quantity is None:
            continue
        description = _clean_description(description)
        if not _is_valid_description(description):
            continue
        batch = _first(raw, "batch_number", "batch", "lot")
        expiry = _first(raw, "expiry_date", "expiry", "exp")
        items.append(ParsedLineItem(
            description=description,
            quantity=quantity,
            unit_price=_coerce_price(_first(raw, "unit_price", "price")),
            batch_number=str(batch).strip() if batch is not None else None,
            expiry_date=format_date_string(str(expiry)) if expiry is not None else None,
            raw_text=json.dumps(raw, default=str),
        ))

    supplier = _first(payload, "supplier", "supplier_name", "vendor")
    document_date = _first(payload, "date", "invoice_date", "delivery_date")
    return ParsedDocument(
        raw_text=raw_text,
        document_date=format_date_string(str(document_date)) if document_date is not None else None,
        supplier_name=str(supplier).strip() if supplier is not None else None,
        total_amount=_coerce_price(_first(payload, "total", "total_amount", "grand_total")),
        items=tuple(items),
    )


def parse_document(source: Union[str, Dict[str, Any]], kind: str = "slip") -> ParsedDocument:
    """Dispatch raw text or an AI response to the matching parser"""
    if isinstance(source, dict):
        return parse_ai_response(source)
    if kind == "ai":
        return parse_ai_response(source)
    if kind == "invoice":
        return parse_invoice_text(source)
    return parse_slip_text(source)


# ========== Review edits ==========

def document_confidence(items: Tuple[ParsedLineItem, ...]) -> Optional[float]:
    """Mean confidence of matched lines"""
    scores = [item.confidence for item in items if item.matched_item_id is not None and item.confidence is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 4)


def _check_index(document: ParsedDocument, index: int):
    if not 0 <= index < len(document.items):
        raise ValidationError(f"Line index {index} out of range (document has {len(document.items)} lines)")


def apply_match(
    document: ParsedDocument,
    index: int,
    item_id: Optional[UUID],
    item_name: Optional[str] = None,
    confidence: Optional[float] = None,
) -> ParsedDocument:
    """Accept, override or clear (item_id=None) the catalog match of one line"""
    _check_index(document, index)
    if item_id is None:
        line = replace(document.items[index], matched_item_id=None, matched_item_name=None, confidence=NO_MATCH_CONFIDENCE)
    else:
        # A human pick counts as certain unless told otherwise
        line = replace(
            document.items[index],
            matched_item_id=item_id,
            matched_item_name=item_name,
            confidence=1.0 if confidence is None else min(max(confidence, 0.0), 1.0),
        )
    items = document.items[:index] + (line,) + document.items[index + 1:]
    return replace(document, items=items, confidence=document_confidence(items))


EDITABLE_LINE_FIELDS = {"description", "quantity", "unit_price", "batch_number", "expiry_date"}


def edit_line(document: ParsedDocument, index: int, **changes) -> ParsedDocument:
    """Return a copy of the document with one line's fields changed"""
    _check_index(document, index)
    unknown = set(changes) - EDITABLE_LINE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot edit line fields: {', '.join(sorted(unknown))}")

    if "quantity" in changes:
        quantity = _coerce_quantity(changes["quantity"])
        if quantity is None:
            raise ValidationError("Quantity must be a positive whole number")
        changes["quantity"] = quantity
    if "description" in changes:
        description = _clean_description(str(changes["description"] or ""))
        if not _is_valid_description(description):
            raise ValidationError("Description must be longer than 2 characters and not only digits")
        changes["description"] = description
    if changes.get("expiry_date") is not None:
        expiry = format_date_string(str(changes["expiry_date"]))
        if expiry is None:
            raise ValidationError(f"Unrecognised expiry date: {changes['expiry_date']}")
        changes["expiry_date"] = expiry

    items = document.items[:index] + (replace(document.items[index], **changes),) + document.items[index + 1:]
    return replace(document, items=items)


def remove_line(document: ParsedDocument, index: int) -> ParsedDocument:
    _check_index(document, index)
    items = document.items[:index] + document.items[index + 1:]
    return replace(document, items=items, confidence=document_confidence(items))


def document_to_dict(document: ParsedDocument) -> Dict[str, Any]:
    """Plain dict view for API responses"""
    data = {f.name: getattr(document, f.name) for f in fields(document) if f.name != "items"}
    data["items"] = [
        {f.name: getattr(item, f.name) for f in fields(item)}
        for item in document.items
    ]
    return data


def document_from_dict(data: Dict[str, Any]) -> ParsedDocument:
    """Inverse of document_to_dict, for documents coming back from review"""
    item_fields = {f.name for f in fields(ParsedLineItem)}
    items = tuple(
        ParsedLineItem(**{key: value for key, value in item.items() if key in item_fields})
        for item in data.get("items") or []
    )
    header_fields = {f.name for f in fields(ParsedDocument)} - {"items"}
    return ParsedDocument(items=items, **{key: value for key, value in data.items() if key in header_fields})
