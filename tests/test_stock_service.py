"""
Tests for the stock mutation engine and receiving
"""
from datetime import date, timedelta

import pytest

from app.core.exceptions import ValidationError, InsufficientStock, NotFoundError, Unauthorized
from app.models import InventoryLog, InventoryBatch, ChangeType, PurchaseOrderStatus
from app.services import StockService


def _logs(db, item_id):
    return db.query(InventoryLog).filter(InventoryLog.inventory_item_id == item_id).order_by(InventoryLog.created_at).all()


class TestAdjustQuantity:
    def test_use_writes_balance_and_one_log(self, db, items, users):
        gauze = items["gauze"]

        balance = StockService.adjust_quantity(db, gauze.id, -3, ChangeType.USE, users["staff"].id, notes="Dressing")

        db.refresh(gauze)
        assert balance == 7
        assert gauze.quantity == 7
        logs = _logs(db, gauze.id)
        assert [log.change_type for log in logs] == ["initial_stock", "use"]
        assert (logs[-1].quantity_change, logs[-1].quantity_after) == (-3, 7)
        assert logs[-1].user_id == users["staff"].id
        assert logs[-1].notes == "Dressing"

    def test_never_goes_negative(self, db, items, users):
        gauze = items["gauze"]

        with pytest.raises(InsufficientStock) as exc:
            StockService.adjust_quantity(db, gauze.id, -11, "use", users["staff"].id)

        assert exc.value.available == 10
        assert exc.value.requested == 11
        db.refresh(gauze)
        assert gauze.quantity == 10
        assert len(_logs(db, gauze.id)) == 1

    @pytest.mark.parametrize("delta, change_type", [
        (0, "adjustment"),
        (5, "use"),
        (-5, "add"),
        (2, "not-a-type"),
    ])
    def test_invalid_changes_rejected(self, db, items, users, delta, change_type):
        with pytest.raises(ValidationError):
            StockService.adjust_quantity(db, items["gauze"].id, delta, change_type, users["staff"].id)
        assert len(_logs(db, items["gauze"].id)) == 1

    def test_adjustment_accepts_either_sign(self, db, items, users):
        gauze = items["gauze"]
        StockService.adjust_quantity(db, gauze.id, 4, "adjustment", users["admin"].id)
        StockService.adjust_quantity(db, gauze.id, -2, "adjustment", users["admin"].id)
        db.refresh(gauze)
        assert gauze.quantity == 12

    def test_batched_item_moves_batch_and_total(self, db, items, users, amoxicillin_batch):
        amoxicillin = items["amoxicillin"]

        balance = StockService.adjust_quantity(
            db, amoxicillin.id, -5, ChangeType.BATCH_STOCK_OUT, users["staff"].id, batch_id=amoxicillin_batch.id
        )

        db.refresh(amoxicillin)
        db.refresh(amoxicillin_batch)
        assert balance == 25
        assert amoxicillin_batch.quantity_on_hand == 25
        assert amoxicillin.quantity == 25
        assert _logs(db, amoxicillin.id)[-1].inventory_batch_id == amoxicillin_batch.id

    def test_batched_item_requires_own_batch(self, db, items, users, amoxicillin_batch):
        with pytest.raises(ValidationError):
            StockService.adjust_quantity(db, items["amoxicillin"].id, -1, "BATCH_STOCK_OUT", users["staff"].id)
        with pytest.raises(ValidationError):
            StockService.adjust_quantity(
                db, items["lidocaine"].id, 1, "BATCH_STOCK_IN", users["staff"].id, batch_id=amoxicillin_batch.id
            )
        with pytest.raises(ValidationError):
            StockService.adjust_quantity(
                db, items["gauze"].id, 1, "add", users["staff"].id, batch_id=amoxicillin_batch.id
            )

    def test_batch_shortfall(self, db, items, users, amoxicillin_batch):
        with pytest.raises(InsufficientStock) as exc:
            StockService.adjust_quantity(
                db, items["amoxicillin"].id, -31, "EXPIRED", users["staff"].id, batch_id=amoxicillin_batch.id
            )
        assert exc.value.batch_id == str(amoxicillin_batch.id)

    def test_unknown_item(self, db, users):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            StockService.adjust_quantity(db, uuid4(), 1, "add", users["staff"].id)

    def test_unknown_or_inactive_actor(self, db, users, items):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            StockService.adjust_quantity(db, items["gauze"].id, -1, "use", uuid4())

        users["staff2"].is_active = False
        db.commit()
        with pytest.raises(Unauthorized):
            StockService.adjust_quantity(db, items["gauze"].id, -1, "use", users["staff2"].id)

        db.refresh(items["gauze"])
        assert items["gauze"].quantity == 10
        assert len(_logs(db, items["gauze"].id)) == 1


class TestBatches:
    def test_batch_number_is_reused(self, db, items, amoxicillin_batch):
        batch = StockService.get_or_create_batch(db, items["amoxicillin"].id, "AX01")
        assert batch.id == amoxicillin_batch.id

    def test_new_batch_starts_empty(self, db, items):
        batch = StockService.get_or_create_batch(
            db, items["lidocaine"].id, "LD7", expiry_date="06/2027", purchase_price=3.5
        )
        db.commit()

        assert batch.quantity_on_hand == 0
        assert batch.expiry_date == date(2027, 6, 1)
        assert db.query(InventoryBatch).filter(InventoryBatch.inventory_item_id == items["lidocaine"].id).count() == 1

    def test_invalid_expiry(self, db, items):
        with pytest.raises(ValidationError):
            StockService.get_or_create_batch(db, items["lidocaine"].id, "LD8", expiry_date="someday")


class TestReceiveBatch:
    def test_receive_batched_line_reuses_batch(self, db, items, users, purchase_order, amoxicillin_batch):
        line = next(item for item in purchase_order.items if item.inventory_item_id == items["amoxicillin"].id)

        batch_id = StockService.receive_batch(db, line.id, 20, users["staff"].id, batch_number="AX01")

        db.refresh(line)
        db.refresh(amoxicillin_batch)
        db.refresh(items["amoxicillin"])
        db.refresh(purchase_order)
        assert batch_id == amoxicillin_batch.id
        assert amoxicillin_batch.quantity_on_hand == 50
        assert items["amoxicillin"].quantity == 50
        assert line.quantity_received == 20
        assert purchase_order.status == PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        log = _logs(db, items["amoxicillin"].id)[-1]
        assert log.change_type == "BATCH_STOCK_IN"
        assert "PO-0001" in log.notes

    def test_full_receipt_closes_po(self, db, items, users, purchase_order):
        for line in purchase_order.items:
            batch_number = "AX50" if line.inventory_item_id == items["amoxicillin"].id else None
            StockService.receive_batch(
                db, line.id, line.quantity_ordered, users["staff"].id,
                batch_number=batch_number, expiry_date="2031-05-31",
            )

        db.refresh(purchase_order)
        db.refresh(items["gauze"])
        assert purchase_order.status == PurchaseOrderStatus.RECEIVED.value
        assert items["gauze"].quantity == 30
        assert _logs(db, items["gauze"].id)[-1].change_type == "STOCK_IN"
        new_batch = db.query(InventoryBatch).filter(InventoryBatch.batch_number == "AX50").one()
        assert new_batch.expiry_date == date(2031, 5, 31)
        assert float(new_batch.purchase_price_at_receipt) == 1.25

    def test_receipt_is_atomic(self, db, items, users, purchase_order, monkeypatch):
        line = next(item for item in purchase_order.items if item.inventory_item_id == items["gauze"].id)

        def fail(po):
            raise ValidationError("status update failed")

        monkeypatch.setattr(StockService, "_refresh_po_status", staticmethod(fail))
        with pytest.raises(ValidationError):
            StockService.receive_batch(db, line.id, 5, users["staff"].id)

        db.refresh(line)
        db.refresh(items["gauze"])
        assert line.quantity_received == 0
        assert items["gauze"].quantity == 10
        assert len(_logs(db, items["gauze"].id)) == 1

    def test_cancelled_po_rejected(self, db, items, users, purchase_order):
        purchase_order.status = PurchaseOrderStatus.CANCELLED.value
        db.commit()
        line = purchase_order.items[0]

        with pytest.raises(ValidationError):
            StockService.receive_batch(db, line.id, 5, users["staff"].id)

    def test_quantity_must_be_positive(self, db, purchase_order, users):
        with pytest.raises(ValidationError):
            StockService.receive_batch(db, purchase_order.items[0].id, 0, users["staff"].id)

    def test_unknown_receiver(self, db, items, purchase_order):
        from uuid import uuid4
        line = purchase_order.items[0]
        with pytest.raises(NotFoundError):
            StockService.receive_batch(db, line.id, 5, uuid4())

        db.refresh(line)
        assert line.quantity_received == 0


class TestQueries:
    def test_low_stock(self, db, items, users):
        StockService.adjust_quantity(db, items["gauze"].id, -6, "use", users["staff"].id)

        low = [item.item_name for item in StockService.get_low_stock_items(db)]

        assert "Sterile Gauze Pads" in low
        assert "Lidocaine 2% Injection" in low
        assert "Amoxicillin 500mg" not in low

    def test_expiring_batches(self, db, items):
        soon = StockService.get_or_create_batch(db, items["lidocaine"].id, "LD1", expiry_date=date(2026, 1, 10))
        soon.quantity_on_hand = 4
        db.commit()

        expiring = StockService.get_expiring_batches(db, days=30, as_of=date(2026, 1, 1))

        assert [batch.batch_number for batch in expiring] == ["LD1"]
        assert StockService.get_expiring_batches(db, days=5, as_of=date(2026, 1, 1)) == []

    def test_log_filters(self, db, items, users):
        StockService.adjust_quantity(db, items["gauze"].id, -1, "use", users["staff"].id, notes="ward 3")
        StockService.adjust_quantity(db, items["gauze"].id, -1, "dispose_other", users["staff"].id)

        assert len(StockService.get_logs(db, item_id=items["gauze"].id)) == 3
        assert [log.change_type for log in StockService.get_logs(db, change_types=["use"])] == ["use"]
        assert len(StockService.get_logs(db, search="ward 3")) == 1
        assert len(StockService.get_logs(db, search="Gauze", limit=2)) == 2


class TestMaintenance:
    def test_interval_and_service_cycle(self, db, items, users):
        scaler = items["scaler"]

        StockService.set_maintenance_interval(db, scaler.id, 6, "months", users["admin"].id, from_date=date(2026, 1, 15))
        assert scaler.next_maintenance_due_date == date(2026, 7, 15)

        due = StockService.get_items_due_for_maintenance(db, days_warning=7, as_of=date(2026, 7, 10))
        assert [item.id for item in due] == [scaler.id]

        StockService.mark_serviced(db, scaler.id, serviced_on=date(2026, 7, 12))
        assert scaler.last_maintenance_date == date(2026, 7, 12)
        assert scaler.next_maintenance_due_date == date(2027, 1, 12)
        assert StockService.get_items_due_for_maintenance(db, as_of=date(2026, 7, 12)) == []

    def test_invalid_interval(self, db, items):
        with pytest.raises(ValidationError):
            StockService.set_maintenance_interval(db, items["scaler"].id, 6, "fortnights")
        with pytest.raises(ValidationError):
            StockService.set_maintenance_interval(db, items["scaler"].id, 0, "days")


def test_create_item_logs_opening_stock(db, items, amoxicillin_batch):
    logs = _logs(db, items["amoxicillin"].id)

    assert len(logs) == 1
    assert logs[0].change_type == "initial_stock"
    assert logs[0].inventory_batch_id == amoxicillin_batch.id
    assert items["amoxicillin"].quantity == 30
    assert amoxicillin_batch.expiry_date == date(2030, 1, 31)
    assert _logs(db, items["lidocaine"].id) == []


def test_duplicate_item_code(db, items, users):
    from app.schemas import InventoryItemCreate
    with pytest.raises(ValidationError):
        StockService.create_item(db, InventoryItemCreate(item_name="Gauze copy", item_code="GZ-100"), users["admin"].id)
