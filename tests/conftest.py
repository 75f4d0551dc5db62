import os
import tempfile

# Settings are read at import time
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["DATA_PATH"] = tempfile.mkdtemp(prefix="clinicstock-test-")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import Base, get_db
from app.models import AppUser, UserRole, Supplier, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from app.schemas import InventoryItemCreate
from app.services import StockService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(db):
    def make(username, role):
        user = AppUser(
            username=username,
            email=f"{username}@clinic.example.com",
            full_name=username.title(),
            role=role,
            is_active=True,
        )
        db.add(user)
        return user

    created = {
        "staff": make("nurse", UserRole.STAFF.value),
        "staff2": make("assistant", UserRole.STAFF.value),
        "admin": make("admin", UserRole.ADMIN.value),
        "owner": make("owner", UserRole.OWNER.value),
        "doctor": make("doctor", UserRole.DOCTOR.value),
    }
    db.commit()
    return created


@pytest.fixture
def items(db, users):
    admin_id = users["admin"].id
    gauze = StockService.create_item(db, InventoryItemCreate(
        item_name="Sterile Gauze Pads",
        item_code="GZ-100",
        category="Consumables",
        low_stock_threshold=5,
        initial_quantity=10,
    ), admin_id)
    amoxicillin = StockService.create_item(db, InventoryItemCreate(
        item_name="Amoxicillin 500mg",
        item_code="AMX-500",
        category="Medicines",
        is_batched=True,
        low_stock_threshold=10,
        initial_quantity=30,
        initial_batch_number="AX01",
        initial_expiry_date=date(2030, 1, 31),
    ), admin_id)
    lidocaine = StockService.create_item(db, InventoryItemCreate(
        item_name="Lidocaine 2% Injection",
        item_code="LID-2",
        category="Medicines",
        is_batched=True,
    ), admin_id)
    scaler = StockService.create_item(db, InventoryItemCreate(
        item_name="Ultrasonic Scaler",
        category="Tools",
        initial_quantity=1,
    ), admin_id)
    return {"gauze": gauze, "amoxicillin": amoxicillin, "lidocaine": lidocaine, "scaler": scaler}


@pytest.fixture
def amoxicillin_batch(db, items):
    return StockService.get_batches(db, items["amoxicillin"].id)[0]


@pytest.fixture
def purchase_order(db, items):
    supplier = Supplier(name="Medline Distributors", contact_email="orders@medline.example.com")
    db.add(supplier)
    db.flush()
    po = PurchaseOrder(po_number="PO-0001", supplier_id=supplier.id, status=PurchaseOrderStatus.ORDERED.value)
    db.add(po)
    db.flush()
    db.add_all([
        PurchaseOrderItem(
            purchase_order_id=po.id, inventory_item_id=items["amoxicillin"].id,
            quantity_ordered=50, quantity_received=0, unit_price=1.25,
        ),
        PurchaseOrderItem(
            purchase_order_id=po.id, inventory_item_id=items["gauze"].id,
            quantity_ordered=20, quantity_received=0, unit_price=0.40,
        ),
    ])
    db.commit()
    db.refresh(po)
    return po


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    """Request headers identifying the acting user"""
    def headers(user):
        return {"X-Actor-Id": str(user.id)}
    return headers
