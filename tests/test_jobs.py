"""
Tests for the periodic sweep job bodies
"""
import asyncio
import threading
from datetime import date, timedelta

from app.jobs import approval_sweep
from app.jobs.approval_sweep import (
    sweep_expired_tokens, report_expiring_batches, report_maintenance_due,
)
from app.models import AdjustmentRequest
from app.models.base import utc_now
from app.schemas import AdjustmentRequestCreate
from app.services import AdjustmentService, StockService


def test_report_expiring_batches(db, items, users):
    StockService.get_or_create_batch(db, items["lidocaine"].id, "LD-OLD", expiry_date=date(2024, 1, 10))
    soon = StockService.get_or_create_batch(db, items["lidocaine"].id, "LD-SOON", expiry_date=date(2024, 2, 20))
    db.commit()
    StockService.adjust_quantity(db, items["lidocaine"].id, 4, "BATCH_STOCK_IN", users["admin"].id, batch_id=soon.id)

    # LD-OLD holds no stock, AX01 (2030) is far away
    assert report_expiring_batches(db, days=30, as_of=date(2024, 2, 1)) == {"expired": 0, "expiring": 1}
    assert report_expiring_batches(db, days=0, as_of=date(2024, 3, 1)) == {"expired": 1, "expiring": 0}
    assert report_expiring_batches(db, days=0, as_of=date(2024, 1, 1)) == {"expired": 0, "expiring": 0}


def test_report_maintenance_due(db, items, users):
    StockService.set_maintenance_interval(
        db, items["scaler"].id, 6, "months", users["admin"].id, from_date=date(2024, 1, 1),
    )

    assert report_maintenance_due(db, as_of=date(2024, 6, 1)) == 0
    assert report_maintenance_due(db, as_of=date(2024, 6, 28)) == 1


def test_sweep_expired_tokens(db, items, users):
    request, token = AdjustmentService.submit_request(db, AdjustmentRequestCreate(
        inventory_item_id=items["gauze"].id,
        quantity_to_decrease=1,
        reason="Damaged",
        notes="Wet packaging",
        issue_token=True,
    ), users["staff"].id)
    assert token

    assert sweep_expired_tokens(db) == 0

    request.approval_token_expires_at = utc_now() - timedelta(minutes=1)
    db.commit()

    assert sweep_expired_tokens(db) == 1
    db.refresh(request)
    assert request.approval_token_hash is None
    assert request.status == "pending"
    assert db.query(AdjustmentRequest).count() == 1


def test_scheduled_sweep_runs_in_worker_thread(monkeypatch):
    calls = []
    monkeypatch.setattr(approval_sweep, "run_sweep_once", lambda: calls.append(threading.get_ident()))

    asyncio.run(approval_sweep.ApprovalSweepScheduler(interval_minutes=5)._run_sweep())

    assert len(calls) == 1
    assert calls[0] != threading.get_ident()
