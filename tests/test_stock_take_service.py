"""
Tests for stock takes and variance follow-up
"""
import pytest

from app.core.exceptions import ValidationError, NotFoundError
from app.models import InventoryLog
from app.services import StockTakeService, AdjustmentService


def _log_count(db):
    return db.query(InventoryLog).count()


def test_record_never_touches_inventory(db, items, users):
    logs_before = _log_count(db)

    stock_take = StockTakeService.record_stock_take(db, items["gauze"].id, 10, 8, users["staff"].id, "Shelf B")

    assert stock_take.variance == -2
    assert stock_take.is_variance_resolved is False
    assert stock_take.counted_by_user_id == users["staff"].id
    db.refresh(items["gauze"])
    assert items["gauze"].quantity == 10
    assert _log_count(db) == logs_before


@pytest.mark.parametrize("system, counted", [(-1, 5), (5, -1), (2.5, 1), (True, 1)])
def test_invalid_counts(db, items, users, system, counted):
    with pytest.raises(ValidationError):
        StockTakeService.record_stock_take(db, items["gauze"].id, system, counted, users["staff"].id)


def test_unknown_item(db, users):
    from uuid import uuid4
    with pytest.raises(NotFoundError):
        StockTakeService.record_stock_take(db, uuid4(), 1, 1, users["staff"].id)


def test_list_and_resolve(db, items, users):
    short = StockTakeService.record_stock_take(db, items["gauze"].id, 10, 8, users["staff"].id)
    exact = StockTakeService.record_stock_take(db, items["scaler"].id, 1, 1, users["staff"].id)

    assert [s.id for s in StockTakeService.list_stock_takes(db, unresolved_only=True)] == [short.id]
    assert [s.id for s in StockTakeService.list_stock_takes(db, item_id=items["scaler"].id)] == [exact.id]

    updated = StockTakeService.update_stock_take(db, short.id, notes="Recounted", is_variance_resolved=True)
    assert updated.is_variance_resolved is True
    assert updated.notes == "Recounted"
    assert updated.variance == -2
    assert StockTakeService.list_stock_takes(db, unresolved_only=True) == []


def test_shortfall_opens_adjustment_request(db, items, users):
    stock_take = StockTakeService.record_stock_take(db, items["gauze"].id, 10, 7, users["staff"].id)

    request, token = StockTakeService.create_variance_adjustment(db, stock_take.id, users["staff"].id)

    assert token is None
    assert request.status == "pending"
    assert request.quantity_to_decrease == 3
    assert request.reason == "Stock Count Correction"
    # Still needs a second person
    AdjustmentService.review_request(db, request.id, users["admin"].id, "approved")
    db.refresh(items["gauze"])
    assert items["gauze"].quantity == 7


def test_surplus_or_resolved_cannot_open_request(db, items, users):
    surplus = StockTakeService.record_stock_take(db, items["gauze"].id, 10, 12, users["staff"].id)
    with pytest.raises(ValidationError):
        StockTakeService.create_variance_adjustment(db, surplus.id, users["staff"].id)

    short = StockTakeService.record_stock_take(db, items["gauze"].id, 10, 9, users["staff"].id)
    StockTakeService.update_stock_take(db, short.id, is_variance_resolved=True)
    with pytest.raises(ValidationError):
        StockTakeService.create_variance_adjustment(db, short.id, users["staff"].id)
