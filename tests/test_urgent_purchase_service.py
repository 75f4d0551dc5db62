"""
Tests for urgent purchases and their approval fan-out
"""
from datetime import date
from uuid import uuid4

import pytest

from app.core.exceptions import (
    ValidationError, Unauthorized, AlreadyResolved, PartialMutationFailure,
)
from app.models import InventoryBatch, InventoryLog, UrgentPurchaseStatus
from app.schemas import UrgentPurchaseCreate, UrgentPurchaseUpdate
from app.services import UrgentPurchaseService, StockService


def _draft(db, items, requester, /, **overrides):
    lines = overrides.pop("items", [
        {"inventory_item_id": items["gauze"].id, "quantity": 5, "slip_text": "Sterile Gauze Pads 5"},
        {
            "inventory_item_id": items["amoxicillin"].id, "quantity": 20, "batch_number": "AX12",
            "expiry_date": date(2025, 12, 1), "slip_text": "Amoxicillin 500mg 20 batch AX12 exp 12/2025",
        },
    ])
    data = UrgentPurchaseCreate(items=lines, slip_filename="slip-0315.jpg", confidence_score=0.87, **overrides)
    return UrgentPurchaseService.create_draft(db, data, requester.id)


def _submitted(db, items, requester, /, **overrides):
    entry = _draft(db, items, requester, **overrides)
    return UrgentPurchaseService.submit_for_approval(db, entry.id, requester.id)


def test_draft_lines_are_numbered_and_named(db, items, users):
    entry = _draft(db, items, users["staff"])

    assert entry.status == UrgentPurchaseStatus.DRAFT.value
    assert [(line.line_number, line.matched_item_name) for line in entry.items] == [
        (1, "Sterile Gauze Pads"),
        (2, "Amoxicillin 500mg"),
    ]


def test_approval_receives_every_line(db, items, users):
    entry = _submitted(db, items, users["staff"])
    assert entry.status == UrgentPurchaseStatus.PENDING_APPROVAL.value
    assert entry.submitted_at is not None

    approved = UrgentPurchaseService.review(db, entry.id, users["owner"].id, "approved")

    assert approved.status == "approved"
    assert approved.reviewed_by_user_id == users["owner"].id
    db.refresh(items["gauze"])
    db.refresh(items["amoxicillin"])
    assert items["gauze"].quantity == 15
    assert items["amoxicillin"].quantity == 50
    batch = db.query(InventoryBatch).filter(InventoryBatch.batch_number == "AX12").one()
    assert batch.quantity_on_hand == 20
    assert batch.expiry_date == date(2025, 12, 1)

    logs = db.query(InventoryLog).filter(InventoryLog.change_type.in_(["add", "BATCH_STOCK_IN"])).all()
    assert sorted(log.change_type for log in logs) == ["BATCH_STOCK_IN", "add"]
    assert all(log.notes == f"Urgent purchase approved: {entry.id}. Slip: slip-0315.jpg" for log in logs)


def test_existing_batch_number_is_topped_up(db, items, users, amoxicillin_batch):
    entry = _submitted(db, items, users["staff"], items=[
        {"inventory_item_id": items["amoxicillin"].id, "quantity": 10, "batch_number": "AX01"},
    ])

    UrgentPurchaseService.review(db, entry.id, users["admin"].id, "approved")

    db.refresh(amoxicillin_batch)
    assert amoxicillin_batch.quantity_on_hand == 40
    assert db.query(InventoryBatch).filter(InventoryBatch.inventory_item_id == items["amoxicillin"].id).count() == 1


def test_batched_line_without_number_gets_unnumbered_batch(db, items, users):
    entry = _submitted(db, items, users["staff"], items=[
        {"inventory_item_id": items["lidocaine"].id, "quantity": 6},
    ])

    UrgentPurchaseService.review(db, entry.id, users["admin"].id, "approved")

    batch = db.query(InventoryBatch).filter(InventoryBatch.inventory_item_id == items["lidocaine"].id).one()
    assert batch.batch_number is None
    assert batch.quantity_on_hand == 6


def test_partial_failure_rolls_back_and_rejects(db, items, users, monkeypatch):
    entry = _submitted(db, items, users["staff"])
    original = StockService.adjust_quantity
    amoxicillin_id = items["amoxicillin"].id

    def adjust_failing_on_amoxicillin(db, item_id, *args, **kwargs):
        if item_id == amoxicillin_id:
            raise ValidationError("batch store unavailable")
        return original(db, item_id, *args, **kwargs)

    monkeypatch.setattr(StockService, "adjust_quantity", staticmethod(adjust_failing_on_amoxicillin))

    with pytest.raises(PartialMutationFailure) as exc:
        UrgentPurchaseService.review(db, entry.id, users["owner"].id, "approved")

    assert exc.value.failed_line == 2
    assert exc.value.entry_id == entry.id
    db.expire_all()
    # The gauze line ran before the failure and must not stick
    assert items["gauze"].quantity == 10
    assert items["amoxicillin"].quantity == 30
    assert db.query(InventoryBatch).filter(InventoryBatch.batch_number == "AX12").count() == 0
    rejected = UrgentPurchaseService.get_entry(db, entry.id)
    assert rejected.status == "rejected"
    assert rejected.reviewer_notes.startswith("Item processing failed: line 2 (Amoxicillin 500mg)")
    assert "batch store unavailable" in rejected.reviewer_notes


def test_failure_after_concurrent_review_leaves_entry_alone(db, items, users):
    entry = _submitted(db, items, users["staff"])
    UrgentPurchaseService.review(db, entry.id, users["admin"].id, "rejected", "Duplicate slip")

    UrgentPurchaseService._reject_after_failure(
        db, entry.id, users["owner"].id, None, ValidationError("batch store unavailable")
    )
    UrgentPurchaseService._reject_after_failure(db, uuid4(), users["owner"].id, None, ValidationError("gone"))

    db.expire_all()
    resolved = UrgentPurchaseService.get_entry(db, entry.id)
    assert resolved.status == "rejected"
    assert resolved.reviewed_by_user_id == users["admin"].id
    assert resolved.reviewer_notes == "Duplicate slip"


def test_rejection(db, items, users):
    entry = _submitted(db, items, users["staff"])

    with pytest.raises(ValidationError):
        UrgentPurchaseService.review(db, entry.id, users["owner"].id, "rejected")
    rejected = UrgentPurchaseService.review(db, entry.id, users["owner"].id, "rejected", "Wrong supplier")

    assert rejected.status == "rejected"
    db.refresh(items["gauze"])
    assert items["gauze"].quantity == 10
    with pytest.raises(AlreadyResolved):
        UrgentPurchaseService.review(db, entry.id, users["admin"].id, "approved")


def test_review_rules(db, items, users):
    draft = _draft(db, items, users["staff"])
    with pytest.raises(ValidationError):
        UrgentPurchaseService.review(db, draft.id, users["owner"].id, "approved")

    own = _submitted(db, items, users["owner"])
    with pytest.raises(Unauthorized):
        UrgentPurchaseService.review(db, own.id, users["owner"].id, "approved")

    for_doctor = _submitted(db, items, users["staff"], target_approval_role="doctor")
    with pytest.raises(Unauthorized):
        UrgentPurchaseService.review(db, for_doctor.id, users["admin"].id, "approved")
    with pytest.raises(Unauthorized):
        UrgentPurchaseService.review(db, for_doctor.id, users["staff2"].id, "approved")

    assert UrgentPurchaseService.review(db, for_doctor.id, users["doctor"].id, "approved").status == "approved"


def test_pending_list_follows_visibility(db, items, users):
    for_doctor = _submitted(db, items, users["staff"], target_approval_role="doctor")
    untargeted = _submitted(db, items, users["staff"])
    _draft(db, items, users["staff"])

    assert [e.id for e in UrgentPurchaseService.list_pending_for_reviewer(db, users["doctor"].id)] == [for_doctor.id]
    assert [e.id for e in UrgentPurchaseService.list_pending_for_reviewer(db, users["admin"].id)] == [untargeted.id]
    assert UrgentPurchaseService.list_pending_for_reviewer(db, users["staff"].id) == []
    assert len(UrgentPurchaseService.list_entries(db, status="draft")) == 1
    assert len(UrgentPurchaseService.list_entries(db, requester_id=users["staff"].id)) == 3


class TestDraftLifecycle:
    def test_update_draft(self, db, items, users):
        entry = _draft(db, items, users["staff"])

        updated = UrgentPurchaseService.update_draft(db, entry.id, UrgentPurchaseUpdate(
            items=[{"inventory_item_id": items["gauze"].id, "quantity": 7}],
            notes="Only gauze arrived",
        ), users["staff"].id)

        assert [(line.line_number, line.quantity) for line in updated.items] == [(1, 7)]
        assert updated.notes == "Only gauze arrived"

    def test_only_requester_edits(self, db, items, users):
        entry = _draft(db, items, users["staff"])
        with pytest.raises(Unauthorized):
            UrgentPurchaseService.update_draft(db, entry.id, UrgentPurchaseUpdate(notes="x"), users["staff2"].id)
        with pytest.raises(Unauthorized):
            UrgentPurchaseService.submit_for_approval(db, entry.id, users["staff2"].id)

    def test_submitted_entry_is_frozen(self, db, items, users):
        entry = _submitted(db, items, users["staff"])
        with pytest.raises(ValidationError):
            UrgentPurchaseService.update_draft(db, entry.id, UrgentPurchaseUpdate(notes="late edit"), users["staff"].id)
        with pytest.raises(AlreadyResolved):
            UrgentPurchaseService.submit_for_approval(db, entry.id, users["staff"].id)

    def test_empty_draft_cannot_be_submitted(self, db, items, users):
        entry = _draft(db, items, users["staff"], items=[])
        with pytest.raises(ValidationError):
            UrgentPurchaseService.submit_for_approval(db, entry.id, users["staff"].id)
