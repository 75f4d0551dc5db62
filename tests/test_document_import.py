"""
Tests for the upload -> extract -> match pipeline
"""
import asyncio
import json
from decimal import Decimal
from datetime import date
from pathlib import Path
from uuid import uuid4

import httpx
import pytest

from app.core.exceptions import ExternalServiceFailure, ValidationError, NotFoundError
from app.integrations import OcrClient, AiExtractionClient, LocalBlobStorage
from app.models import Invoice
from app.services import document_import_service
from app.services.document_parser import parse_invoice_text

SLIP_TEXT = """
ABC Medical Supplies
Delivery Date: 15/03/2024
Amoxicilin 500mg 20 batch AX12 exp 12/2025
Sterile Gauze Pads 50
Wall Clock Battery 2
"""


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(root=str(tmp_path), signing_key="test-key")


def _ocr(handler):
    return OcrClient(base_url="http://ocr.local/ocr", transport=httpx.MockTransport(handler))


def _stored_files(storage):
    return [p for p in Path(storage.root).rglob("*") if p.is_file()]


def test_slip_import_matches_catalog(db, items, storage):
    ocr = _ocr(lambda request: httpx.Response(200, json={"text": SLIP_TEXT}))

    imported = asyncio.run(document_import_service.import_document(
        db, b"\xff\xd8jpeg", "slip.jpg", "image/jpeg", storage=storage, ocr_client=ocr,
    ))

    assert imported.extraction == "ocr"
    assert imported.storage_path.startswith("urgent-purchase-slips/")
    assert storage.read(imported.storage_path) == b"\xff\xd8jpeg"

    document = imported.document
    assert document.document_date == "2024-03-15"
    lines = {item.description: item for item in document.items}
    assert lines["Amoxicilin 500mg"].matched_item_id == items["amoxicillin"].id
    assert lines["Amoxicilin 500mg"].batch_number == "AX12"
    assert lines["Sterile Gauze Pads"].matched_item_id == items["gauze"].id
    assert lines["Wall Clock Battery"].matched_item_id is None
    assert 0 < document.confidence < 1


def test_import_without_matching(db, items, storage):
    ocr = _ocr(lambda request: httpx.Response(200, json={"text": SLIP_TEXT}))

    imported = asyncio.run(document_import_service.import_document(
        db, b"img", "slip.png", "image/png", match=False, storage=storage, ocr_client=ocr,
    ))

    assert all(item.matched_item_id is None for item in imported.document.items)


def test_ai_extraction_path(db, items, storage):
    def handler(request):
        payload = json.loads(request.read())
        assert payload["messages"][1]["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")
        content = json.dumps({"supplier": "Acme", "items": [{"description": "Sterile Gauze Pads", "quantity": 4}]})
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    ai = AiExtractionClient(api_key="sk-test", base_url="http://ai.local/v1", transport=httpx.MockTransport(handler))

    imported = asyncio.run(document_import_service.import_document(
        db, b"png", "invoice.png", "image/png", kind="invoice", use_ai=True, storage=storage, ai_client=ai,
    ))

    assert imported.extraction == "ai"
    assert imported.storage_path.startswith("invoices/")
    assert imported.document.supplier_name == "Acme"
    assert imported.document.items[0].matched_item_id == items["gauze"].id


def test_failed_extraction_removes_upload(db, items, storage):
    ocr = _ocr(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(ExternalServiceFailure):
        asyncio.run(document_import_service.import_document(
            db, b"img", "slip.jpg", "image/jpeg", storage=storage, ocr_client=ocr,
        ))

    assert _stored_files(storage) == []


def test_pdf_without_text_layer_is_rejected(db, storage):
    with pytest.raises(ValidationError):
        asyncio.run(document_import_service.import_document(
            db, b"not really a pdf", "invoice.pdf", "application/pdf", kind="invoice", storage=storage,
        ))
    assert _stored_files(storage) == []


@pytest.mark.parametrize("data, content_type, kind", [
    (b"", "image/jpeg", "slip"),
    (b"x", "text/plain", "slip"),
    (b"x", "image/jpeg", "receipt"),
    (b"x" * (document_import_service.MAX_UPLOAD_BYTES + 1), "image/jpeg", "slip"),
])
def test_rejected_before_upload(db, storage, data, content_type, kind):
    with pytest.raises(ValidationError):
        asyncio.run(document_import_service.import_document(
            db, data, "file", content_type, kind=kind, storage=storage,
        ))
    assert _stored_files(storage) == []


def test_save_invoice_and_download_url(db, users, purchase_order, storage):
    path = storage.upload("invoices", "inv.pdf", b"%PDF-1.4")
    document = parse_invoice_text("MEDLINE DISTRIBUTORS LTD\nInvoice Date: 02/04/2024\nAlcohol Swabs 200 0.05\nGrand Total 10.00")

    invoice = document_import_service.save_invoice(
        db, path, "inv.pdf", document, users["admin"].id, purchase_order_id=purchase_order.id,
    )

    assert invoice.invoice_date == date(2024, 4, 2)
    assert invoice.supplier_name == "MEDLINE DISTRIBUTORS LTD"
    assert Decimal(str(invoice.total_amount)) == Decimal("10.00")
    assert db.query(Invoice).count() == 1

    url = document_import_service.get_invoice_download_url(db, invoice.id, storage=storage)
    assert "/api/files/invoices/" in url and "signature=" in url


def test_save_invoice_unknown_purchase_order(db, users, storage):
    document = parse_invoice_text("Alcohol Swabs 200 0.05")
    with pytest.raises(NotFoundError):
        document_import_service.save_invoice(db, "invoices/x.pdf", "x.pdf", document, users["admin"].id, uuid4())
    assert db.query(Invoice).count() == 0


def test_unexpected_parser_error_removes_upload(db, items, storage, monkeypatch):
    def broken_parser(text, kind):
        raise RuntimeError("parser blew up")

    monkeypatch.setattr(document_import_service, "parse_document", broken_parser)
    ocr = _ocr(lambda request: httpx.Response(200, json={"text": SLIP_TEXT}))

    with pytest.raises(RuntimeError):
        asyncio.run(document_import_service.import_document(
            db, b"img", "slip.jpg", "image/jpeg", storage=storage, ocr_client=ocr,
        ))

    assert _stored_files(storage) == []


def test_oversized_invoice_figures_still_import(db, items, storage):
    text = "Nitrile Gloves " + "9" * 400 + " 5.00\nSterile Gauze Pads 4 1.20"
    ocr = _ocr(lambda request: httpx.Response(200, json={"text": text}))

    imported = asyncio.run(document_import_service.import_document(
        db, b"img", "invoice.jpg", "image/jpeg", kind="invoice", storage=storage, ocr_client=ocr,
    ))

    assert [(item.description, item.quantity) for item in imported.document.items] == [("Sterile Gauze Pads", 4)]
    assert _stored_files(storage) != []
